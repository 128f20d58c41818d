# app/infra/logging_config.py
"""
Logging setup for the image proxy.

Production writes one JSON object per line; development writes colored
single-line records. Request-scoped fields (request id, url, domain) are
attached through ``extra=`` or ``LogContext`` and rendered by both
formatters.
"""
import json
import logging
import sys
from datetime import datetime, timezone

# Structured fields copied from ``extra=`` onto log output
EXTRA_FIELDS = (
    "request_id",
    "url",
    "domain",
    "status_code",
    "source",
    "content_type",
    "width",
    "height",
    "duration_ms",
)

# Third-party loggers capped at WARNING unless the app level is higher
NOISY_LOGGERS = ("uvicorn.access", "aiohttp.access", "aiohttp.client", "PIL")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON document per record (production)"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field_name in EXTRA_FIELDS:
            if hasattr(record, field_name):
                log_data[field_name] = getattr(record, field_name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line records for development"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _context(record: logging.LogRecord) -> str:
        parts = []
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"req={str(request_id)[:8]}")
        for name in ("domain", "source", "status_code"):
            value = getattr(record, name, None)
            if value is not None:
                parts.append(f"{name}={value}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        timestamp = _record_time(record).strftime("%H:%M:%S.%f")[:-3]

        line = (
            f"{color}{timestamp} {record.levelname:<8}{self.RESET} "
            f"{record.name}{self._context(record)}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Replace root handlers with a single stdout handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: JSON lines (production) instead of colored console output
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    app_level = logging.getLevelName(level.upper())
    floor = max(logging.WARNING, app_level) if isinstance(app_level, int) else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    """Module logger; configuration is global via setup_logging()"""
    return logging.getLogger(name)


class LogContext:
    """Logger wrapper that stamps fixed request fields onto every record"""

    def __init__(
            self,
            logger: logging.Logger,
            request_id: str | None = None,
            url: str | None = None,
            domain: str | None = None,
    ):
        self.logger = logger
        self.context = {}
        if request_id is not None:
            self.context["request_id"] = request_id
        if url:
            self.context["url"] = shorten_url(url)
        if domain is not None:
            self.context["domain"] = domain

    def log(self, level: int, msg: str, *args, **kwargs):
        extra = {**kwargs.pop("extra", {}), **self.context}
        self.logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)


def shorten_url(url: str, limit: int = 120) -> str:
    """Trim a URL for log lines.

    Example: a 300-char signed CDN URL becomes its first 117 chars + ``"..."``.
    Query strings on image URLs are often long signatures that add nothing
    to a log line.
    """
    if len(url) <= limit:
        return url
    return url[: limit - 3] + "..."
