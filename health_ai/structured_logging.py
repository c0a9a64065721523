"""
Structured logging for the Health Assistant AI Service.

JSON log lines carry the request ID and endpoint of the HTTP call that
produced them, so a single symptom analysis can be followed from the inbound
request through the completion call to the record hand-off.

Keyword data is logged as-is except for patient content (symptoms, chat
messages, images, ...), which is reduced to its length.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "health-ai"

# Keyword data that may hold patient content
REDACTED_KEYS = frozenset({
    "message",
    "symptoms",
    "query",
    "context",
    "image_data",
    "clinical_indication",
    "additional_info",
})

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
endpoint_var: ContextVar[Optional[str]] = ContextVar("endpoint", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context, generating one if needed."""
    if not request_id:
        request_id = uuid.uuid4().hex[:8]
    request_id_var.set(request_id)
    return request_id


def bind_endpoint(endpoint: Optional[str]) -> None:
    endpoint_var.set(endpoint)


def redact(data: dict) -> dict:
    """Replace patient content with a length marker."""
    clean = {}
    for key, value in data.items():
        if key in REDACTED_KEYS and value is not None:
            clean[key] = f"<redacted:{len(str(value))}>"
        else:
            clean[key] = value
    return clean


class RequestContextFilter(logging.Filter):
    """Copies the request ID and endpoint onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        record.endpoint = endpoint_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        for attr in ("request_id", "endpoint"):
            value = getattr(record, attr, None)
            if value and value != "-":
                entry[attr] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        return json.dumps(entry, default=str)


class StructuredLogger:
    """logging.Logger wrapper that accepts keyword data: logger.info("msg", kind="chat")."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        extra = {"extra_data": redact(kwargs)} if kwargs else {}
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **kwargs)


def setup_logging(
    level: int = logging.INFO,
    service_name: str = SERVICE_NAME,
    use_json: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Logging level (default: INFO)
        service_name: Service name stamped on every JSON entry
        use_json: JSON lines when True, plain text otherwise
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())

    if use_json:
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(request_id)s %(endpoint)s] %(name)s %(levelname)s: %(message)s"
        ))

    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # The request middleware already logs every call.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: Optional[str] = None,
    analysis_source: Optional[str] = None,
) -> None:
    """Log one HTTP request with timing and, for AI endpoints, the answer source."""
    logger = StructuredLogger("http")

    data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
    }
    if client_ip:
        data["client_ip"] = _mask_ip(client_ip)
    if analysis_source:
        data["analysis_source"] = analysis_source

    if status_code >= 500:
        logger.error(f"{method} {path} {status_code}", **data)
    elif analysis_source == "fallback":
        logger.warning(f"{method} {path} {status_code} (fallback)", **data)
    else:
        logger.info(f"{method} {path} {status_code}", **data)


def _mask_ip(ip: str) -> str:
    """Keep only the network half of an IPv4 address."""
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.xxx.xxx"
    return "xxx"
