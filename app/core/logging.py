import logging
import logging.config
import re

CONTACT_PATTERNS = [
    re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
    re.compile(r"(?<!\w)\+?\d{1,3}[-.\s]?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{3,4}(?!\w)"),
    re.compile(r"(?i)((?:contact_email|contact_phone|note)\s*[=:]\s*)([^,\s]+)"),
]


class ContactRedactionFilter(logging.Filter):
    """Scrub e-mail addresses, phone numbers and free-text notes from log records."""

    def _scrub(self, value: object) -> object:
        if not isinstance(value, str):
            return value

        scrubbed = value
        for pattern in CONTACT_PATTERNS:
            if pattern.groups:
                scrubbed = pattern.sub(r"\1[REDACTED]", scrubbed)
            else:
                scrubbed = pattern.sub("[REDACTED]", scrubbed)
        return scrubbed

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._scrub(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._scrub(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._scrub(value) for key, value in record.args.items()}

        return True


def setup_logging() -> None:
    from app.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "contact_redaction": {
                    "()": "app.core.logging.ContactRedactionFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["contact_redaction"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
                "sqlalchemy.engine": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
                "uvicorn.access": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
