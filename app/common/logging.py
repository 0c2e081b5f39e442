import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig

# Third-party loggers that are chatty at DEBUG/INFO (one line per S3 request)
QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure root logging.

    ``fmt`` selects the console formatter: ``json`` for structured output,
    ``plain`` for local development. Startup lines are always plain.
    """
    loggers: dict[str, dict] = {
        "app.startup": {
            "handlers": ["startup_console"],
            "level": "INFO",
            "propagate": False,
        },
        "app.storage": {"level": level},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter},
                "plain": {"format": "%(levelname)s %(name)s: %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain" if fmt == "plain" else "json",
                },
                "startup_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"extra": {...}}`` fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        structured = getattr(record, "extra", None)
        if isinstance(structured, dict):
            payload.update(structured)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # datetimes (last_modified) and other SDK objects fall back to str()
        return json.dumps(payload, ensure_ascii=False, default=str)
