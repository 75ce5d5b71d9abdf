"""Logging Hardening and Redaction.

This module provides filters to prevent credentials (caller bearer tokens,
provider API keys) from appearing in application logs.
"""
import logging
import re

SECRET_PATTERNS = [
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._\-]+'), r'\1[REDACTED]'),
    (re.compile(r'("(?:apiKey|api_key)":\s*")[^"]*(")'), r'\1[REDACTED]\2'),
    (re.compile(r'\bsk-[A-Za-z0-9_\-]{4,}'), 'sk-[REDACTED]'),
    # Store keys embed the raw token
    (re.compile(r'(credential:)[A-Za-z0-9._\-]+'), r'\1[REDACTED]'),
]


def redact(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Filter that redacts secret-like patterns from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True


def setup_logging_redaction(level: str = "INFO") -> None:
    """Apply the SecretRedactionFilter to the root logger and existing loggers."""
    redact_filter = SecretRedactionFilter()

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

    # Remove existing filters if any (to avoid duplicates)
    for f in root_logger.filters[:]:
        if isinstance(f, SecretRedactionFilter):
            root_logger.removeFilter(f)
    root_logger.addFilter(redact_filter)

    for handler in root_logger.handlers:
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(redact_filter)

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        if not any(isinstance(f, SecretRedactionFilter) for f in logger.filters):
            logger.addFilter(redact_filter)

    logging.info("Logging redaction filters active.")
