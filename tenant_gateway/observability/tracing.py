from opentelemetry.sdk.trace import SpanProcessor, ReadableSpan
import re
from typing import Optional

REDACTED = "[REDACTED]"


class RedactingSpanProcessor(SpanProcessor):
    """
    Wraps another processor and masks credential-bearing attributes before
    the span is handed on for export.
    """
    def __init__(self, processor: SpanProcessor):
        self._processor = processor
        self._sensitive_keys = {"authorization", "cookie", "set-cookie", "x-tenant-id", "url.query"}
        self._sensitive_patterns = [
            re.compile(r"http\.request\.header\..*", re.IGNORECASE),
            re.compile(r"http\.response\.header\..*", re.IGNORECASE),
            re.compile(r".*(token|secret|api_key|apikey|sid).*", re.IGNORECASE),
        ]
        # Query strings carry realtime session ids
        self._url_keys = {"http.url", "http.target", "url.full"}

    def on_start(self, span, parent_context: Optional["Context"] = None) -> None:
        self._processor.on_start(span, parent_context)

    def on_end(self, span: ReadableSpan) -> None:
        if span.attributes:
            redacted = {key: self.redact_value(key, value) for key, value in span.attributes.items()}
            # ReadableSpan exposes no setter once ended
            if hasattr(span, "_attributes"):
                span._attributes = redacted
        self._processor.on_end(span)

    def shutdown(self) -> None:
        self._processor.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._processor.force_flush(timeout_millis)

    def redact_value(self, key: str, value):
        if self.should_redact(key):
            return REDACTED
        if key.lower() in self._url_keys and isinstance(value, str) and "?" in value:
            return value.split("?", 1)[0] + "?" + REDACTED
        return value

    def should_redact(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in self._sensitive_keys:
            return True
        return any(pattern.match(key_lower) for pattern in self._sensitive_patterns)
