"""
Logging setup for the ISP admin back-office.

Every module logs through ``logging.getLogger(__name__)`` and attaches
structured fields as ``extra={"context": {...}}``. This module decides how
those records are rendered:

- JSON lines in production and in the rotating files under ``./logs``
- a coloured single-line format on the development console

It also installs request hooks that tag each API call with a request id.
The id is taken from an incoming ``X-Request-ID`` header when present and
echoed back on the response, so gateway and panel calls made while serving
the request can be correlated with it.
"""

import functools
import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from flask import Flask, g, request
from flask_login import current_user

REQUEST_ID_HEADER = "X-Request-ID"

# Polled endpoints only logged at DEBUG
QUIET_PATHS = ("/health", "/metrics")

LOG_FILES = (
    ("isp_admin.log", None),
    ("isp_admin_errors.log", logging.ERROR),
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, ``context`` kept as a nested object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.RESET)
        record.levelname = f"{color}{levelname:8}{self.RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = levelname
        context = getattr(record, "context", None)
        if context:
            message = f"{message} | {json.dumps(context, default=str)}"
        return message


def _resolve_level(log_level: Union[int, str]) -> int:
    override = os.getenv("LOG_LEVEL")
    if override:
        log_level = override
    if isinstance(log_level, int):
        return log_level
    return getattr(logging, str(log_level).upper(), logging.INFO)


def _add_file_handlers(root_logger: logging.Logger, level: int) -> None:
    log_dir = Path(os.getenv("LOG_DIR", Path.cwd() / "logs"))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        root_logger.warning(
            "Log directory unavailable, logging to console only",
            extra={"context": {"log_dir": str(log_dir), "error": str(e)}},
        )
        return

    formatter = JSONFormatter()
    for filename, handler_level in LOG_FILES:
        try:
            handler = logging.handlers.RotatingFileHandler(
                log_dir / filename,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        except OSError as e:
            root_logger.warning(
                f"Failed to create file handler for {filename}",
                extra={"context": {"error": str(e)}},
            )
            continue
        handler.setLevel(handler_level or level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def _install_request_hooks(app: Flask) -> None:
    request_logger = logging.getLogger("isp_admin.request")

    def _level_for(path: str) -> int:
        return logging.DEBUG if path.startswith(QUIET_PATHS) else logging.INFO

    @app.before_request
    def log_request():
        g.request_start_time = time.perf_counter()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        g.route = request.url_rule.rule if request.url_rule is not None else request.path
        g.user_id = None
        if current_user and current_user.is_authenticated:
            g.user_id = getattr(current_user, "id", None)

        request_logger.log(
            _level_for(request.path),
            f"{request.method} {request.path}",
            extra={
                "context": {
                    "request_id": g.request_id,
                    "route": g.route,
                    "user_id": g.user_id,
                    "remote_addr": request.remote_addr,
                }
            },
        )

    @app.after_request
    def log_response(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        started = g.get("request_start_time")
        if started is not None:
            duration_ms = (time.perf_counter() - started) * 1000
            level = _level_for(request.path)
            if response.status_code >= 500:
                level = logging.ERROR
            request_logger.log(
                level,
                f"{request.method} {request.path} {response.status_code} in {duration_ms:.2f}ms",
                extra={
                    "context": {
                        "request_id": request_id,
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                    }
                },
            )
        return response


def setup_logging(
    app: Optional[Flask] = None,
    log_level: Union[int, str] = "INFO",
    log_to_file: bool = False,
    use_json_format: bool = False,
) -> None:
    """Replace the root handlers and, given an app, add request logging.

    Args:
        app: Flask application receiving the request/response hooks
        log_level: Level name or number; LOG_LEVEL in the environment wins
        log_to_file: Also write JSON lines to rotating files in LOG_DIR
        use_json_format: Render console output as JSON
    """
    level = _resolve_level(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    if use_json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ConsoleFormatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    root_logger.addHandler(console_handler)

    if log_to_file:
        _add_file_handlers(root_logger, level)

    if app is not None:
        _install_request_hooks(app)

    for noisy in ("werkzeug", "urllib3", "apscheduler", "aiosmtplib"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_performance(operation: Optional[str] = None, threshold_ms: float = 0.0):
    """Decorator logging how long the wrapped call took.

    Calls faster than ``threshold_ms`` are logged at DEBUG, slower ones at
    INFO. The duration is logged even when the call raises.

    Example:
        @log_performance("registrar_price_sync")
        def sync_registrar_prices(): ...
    """

    def decorator(func):
        name = operation or func.__name__
        perf_logger = get_logger("isp_admin.performance")

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - started) * 1000
                perf_logger.log(
                    logging.INFO if duration_ms >= threshold_ms else logging.DEBUG,
                    f"{name} completed in {duration_ms:.2f}ms",
                    extra={"context": {"operation": name, "duration_ms": round(duration_ms, 2)}},
                )

        return wrapper

    return decorator
