import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Dict, List, Optional

from core.config import settings
from core.security import user_id_from_access_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

LOG_FORMAT = "%(levelname)s - %(asctime)s - %(user_id)s - %(api)s - %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")

# logger name -> handler keys it writes to
LOGGER_ROUTES: Dict[str, List[str]] = {
    "uvicorn": ["app", "error", "console"],
    "uvicorn.error": ["app", "error", "console"],
    "fastapi": ["app", "error", "console"],
    "uvicorn.access": ["access", "console"],
}


def map_log_level(level_name: Optional[str]) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        return True


def _file_handler(log_dir: Path, filename: str) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    return handler


def _build_handlers(level: int, log_dir: Path) -> Dict[str, logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = {
        "app": _file_handler(log_dir, "app.log"),
        "access": _file_handler(log_dir, "access.log"),
        "error": _file_handler(log_dir, "error.log"),
        "console": logging.StreamHandler(),
    }
    for key, handler in handlers.items():
        handler.setLevel(logging.WARNING if key == "error" else level)
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
    return handlers


def _attach(target: logging.Logger, handlers: List[logging.Handler], level: int, propagate: bool = False) -> None:
    for h in list(target.handlers):
        target.removeHandler(h)
    for h in handlers:
        target.addHandler(h)
    target.setLevel(level)
    target.propagate = propagate


def configure_logging(app_logger_name: str = "channel_accounts") -> logging.Logger:
    """Route root, app and server loggers to midnight-rotated files plus console.

    Rotated files older than LOG_TTL_DAYS are dropped. Warnings and above are
    duplicated into error.log.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir)
    default = [handlers["app"], handlers["error"], handlers["console"]]

    _attach(logging.getLogger(), default, level, propagate=True)
    app_logger = logging.getLogger(app_logger_name)
    _attach(app_logger, default, level)
    for name, keys in LOGGER_ROUTES.items():
        _attach(logging.getLogger(name), [handlers[k] for k in keys], level)

    return app_logger


def _request_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.ACCESS_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log record of a request with the caller's user id and route."""

    async def dispatch(self, request: Request, call_next):
        token = _request_token(request)
        user_token = user_id_var.set((user_id_from_access_token(token) if token else None) or "-")
        api_token = api_var.set(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        finally:
            user_id_var.reset(user_token)
            api_var.reset(api_token)
