import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

_CONTEXT_FIELDS = ('request_id', 'collector', 'coordinates', 'response_time_ms')

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName', 'created', 'msecs',
    'relativeCreated', 'thread', 'threadName', 'processName', 'process', 'taskName',
    'getMessage',
}


class StructuredJSONFormatter(logging.Formatter):
    """Formatter for structured JSON logging, one object per line"""

    def __init__(self, service_name: str = "dol-engine"):
        super().__init__()
        self.service_name = service_name
        self.hostname = os.environ.get('HOSTNAME', 'localhost')

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "hostname": self.hostname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key in _CONTEXT_FIELDS or key.startswith('_'):
                continue
            log_entry.setdefault("extra", {})[key] = value

        return json.dumps(log_entry, default=str, separators=(',', ':'))


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for development"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)8s | %(name)24s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    level: str = "INFO",
    use_json: Optional[bool] = None,
    service_name: str = "dol-engine"
) -> None:
    """Setup logging configuration for the engine and its collectors"""
    if use_json is None:
        use_json = (
            os.environ.get('APP_ENV') == 'production' or
            os.environ.get('LOG_FORMAT', '').lower() == 'json'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(StructuredJSONFormatter(service_name) if use_json else DevelopmentFormatter())
    root_logger.addHandler(console_handler)

    configure_engine_loggers(level)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "log_format": "json" if use_json else "development",
            "log_level": level,
            "service": service_name
        }
    )


def configure_engine_loggers(level: str) -> None:
    """Set engine logger levels and quiet noisy third-party loggers"""
    logging.getLogger('dol_engine').setLevel(getattr(logging, level.upper()))

    for noisy in ('httpx', 'httpcore', 'asyncio', 'redis'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_request_logger(name: str, request_id: str, coordinates: tuple) -> logging.LoggerAdapter:
    """Get a logger that stamps request context onto every record"""

    class ContextAdapter(logging.LoggerAdapter):
        def process(self, msg, kwargs):
            extra = kwargs.get('extra', {})
            extra.update(self.extra)
            kwargs['extra'] = extra
            return msg, kwargs

    return ContextAdapter(
        logging.getLogger(name),
        {'request_id': request_id, 'coordinates': {'lat': coordinates[0], 'lon': coordinates[1]}},
    )
