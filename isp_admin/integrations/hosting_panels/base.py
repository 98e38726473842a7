"""
Shared HTTP plumbing for hosting control panel clients.
"""

import logging
from functools import wraps
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.domain.interfaces import IHostingPanel

from .results import API_ERROR, UNEXPECTED_ERROR

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def build_base_url(api_url: str, port: Optional[int], use_https: bool) -> str:
    """Normalize a configured panel URL into ``scheme://host:port``.

    ``api_url`` may be a bare hostname or a full URL; an explicit port in
    the URL wins over the configured one.
    """
    raw = api_url.strip().rstrip("/")
    if "://" not in raw:
        raw = f"{'https' if use_https else 'http'}://{raw}"
    parts = urlsplit(raw)
    netloc = parts.netloc
    if parts.port is None and port:
        netloc = f"{parts.hostname}:{port}"
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


def panel_operation(result_cls):
    """Turn API failures of a panel call into an error result of ``result_cls``."""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except ExternalServiceError as e:
                logger.warning(
                    f"{self.panel_name} call failed",
                    extra={"context": {"operation": func.__name__, "error": str(e)}},
                )
                return result_cls.error(str(e), API_ERROR)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(
                    f"Unexpected {self.panel_name} response",
                    extra={"context": {"operation": func.__name__, "error": str(e)}},
                    exc_info=True,
                )
                return result_cls.error(f"Unexpected error: {e}", UNEXPECTED_ERROR)

        return wrapper

    return decorator


class BaseHostingPanel(IHostingPanel):
    """Base class for panel clients built on a ``requests.Session``."""

    panel_name = "HostingPanel"
    default_port: Optional[int] = None

    def __init__(
        self,
        api_url: str,
        port: Optional[int] = None,
        use_https: bool = True,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        if not api_url:
            raise ValueError(f"{self.panel_name} API URL is required")
        self.base_url = build_base_url(api_url, port or self.default_port, use_https)
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            ExternalServiceError: On connection errors, HTTP errors or a
                non-JSON body
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, timeout=self.timeout, verify=self.verify_ssl, **kwargs
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ExternalServiceError(
                self.panel_name, f"HTTP {status} from {path}", status_code=status
            ) from e
        except requests.RequestException as e:
            raise ExternalServiceError(self.panel_name, f"Connection failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(self.panel_name, "Invalid JSON response") from e

    def close(self) -> None:
        self.session.close()
