"""
Common API utilities for consistent response formatting across all controllers.
"""

import logging
from functools import wraps
from typing import Any, Optional, Tuple

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    InvalidOperationError,
    UnsupportedProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def api_response(
    success: bool, message: str, data: Optional[Any] = None, status_code: int = 200
) -> tuple:
    """
    Standardized API response format for all endpoints.

    Args:
        success: Whether the operation was successful
        message: Human-readable message about the operation
        data: Optional data payload
        status_code: HTTP status code

    Returns:
        Tuple of (json_response, status_code)
    """
    response = {"success": success, "message": message}

    if data is not None:
        response["data"] = data

    return jsonify(response), status_code


def get_json_body() -> dict:
    """Return the request JSON object or raise ValueError."""
    data = request.get_json(silent=True)
    if data is None:
        raise ValueError("Request body must be a JSON object")
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def get_pagination_args() -> Tuple[int, int]:
    """Read ``page`` and ``page_size`` query arguments.

    Raises:
        ValueError: If either value is not a positive integer or page_size
            exceeds MAX_PAGE_SIZE
    """
    try:
        page = int(request.args.get("page", 1))
        page_size = int(request.args.get("page_size", DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        raise ValueError("page and page_size must be integers")
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    return page, page_size


def get_bool_arg(name: str, default: bool = False) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def handle_service_errors(f):
    """
    Decorator translating service exceptions into api_response payloads.

    - EntityNotFoundError -> 404
    - InvalidOperationError / ValueError -> 400
    - ExternalServiceError -> 502
    - SQLAlchemyError and anything else -> 500 (logged with traceback)
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except EntityNotFoundError as e:
            return api_response(False, str(e), None, 404)
        except (InvalidOperationError, UnsupportedProviderError) as e:
            return api_response(False, str(e), None, 400)
        except ValueError as e:
            return api_response(False, str(e), None, 400)
        except ExternalServiceError as e:
            logger.error(
                "External service failure",
                extra={"context": {"endpoint": f.__name__, "error": str(e)}},
            )
            return api_response(False, str(e), None, 502)
        except SQLAlchemyError as e:
            logger.error(
                f"Database error in {f.__name__}",
                extra={"context": {"error": str(e)}},
                exc_info=True,
            )
            return api_response(False, "Database error", None, 500)
        except Exception as e:
            logger.exception(
                f"Unhandled error in {f.__name__}",
                extra={"context": {"error": str(e)}},
            )
            return api_response(False, "Internal server error", None, 500)

    return wrapper
