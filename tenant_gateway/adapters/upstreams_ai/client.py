"""LLM Upstream Client - buffered and streamed provider dispatch."""
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from tenant_gateway.domain.cache import ProviderResponse
from tenant_gateway.domain.models import ProviderEndpoint
from tenant_gateway.errors import UpstreamUnreachable, error_body

logger = logging.getLogger(__name__)

# Timeout configuration
DEFAULT_TIMEOUT = 30.0

SSE_SENTINEL = "data: [DONE]\n\n"


@dataclass
class StreamProgress:
    """Filled in while a stream runs; read by the caller when it ends."""
    upstream_reached: bool = False
    chunks: int = 0
    sentinel_sent: bool = False


def error_frame(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> str:
    return f"data: {json.dumps(error_body(code, message, details))}\n\n"


def _upstream_error_frame(status_code: int, body: bytes) -> str:
    """Relay a structured provider error as-is; normalize anything else."""
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return f"data: {json.dumps(parsed)}\n\n"
    return error_frame("UPSTREAM_ERROR", f"Upstream returned {status_code}")


class ProviderDispatcher:
    """Forwards a validated request to the tenant's provider. One attempt, no retries."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _headers(provider: ProviderEndpoint, stream: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {provider.api_key}",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    async def dispatch(self, provider: ProviderEndpoint, payload: Dict[str, Any]) -> ProviderResponse:
        """Buffered call. Upstream status and body come back untouched."""
        try:
            async with self._client() as client:
                response = await client.post(
                    provider.endpoint_url,
                    headers=self._headers(provider, stream=False),
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.warning("upstream_unreachable", extra={"endpoint": provider.endpoint_url, "error": str(e)})
            raise UpstreamUnreachable() from e

        if response.status_code >= 400:
            logger.info(f"Upstream returned {response.status_code}, passing through")

        return ProviderResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type", "application/json"),
        )

    async def stream(
        self, provider: ProviderEndpoint, payload: Dict[str, Any], progress: Optional[StreamProgress] = None
    ) -> AsyncIterator[str]:
        """Relay upstream server-sent events line by line.

        Always ends with exactly one `data: [DONE]` frame, whether the upstream
        sent one, omitted it, or failed. Closing this generator (caller went
        away) exits the httpx context managers and abandons the upstream read.
        """
        progress = progress or StreamProgress()
        open_event = False
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    provider.endpoint_url,
                    headers=self._headers(provider, stream=True),
                    json=payload,
                ) as response:
                    progress.upstream_reached = True

                    if response.status_code >= 400:
                        body = await response.aread()
                        yield _upstream_error_frame(response.status_code, body)
                    else:
                        async for line in response.aiter_lines():
                            if line.strip() == "data: [DONE]":
                                break
                            if line:
                                progress.chunks += 1
                            open_event = bool(line)
                            yield f"{line}\n"
        except httpx.HTTPError as e:
            logger.warning("upstream_unreachable", extra={
                "endpoint": provider.endpoint_url, "error": str(e), "chunks": progress.chunks
            })
            if open_event:
                yield "\n"
                open_event = False
            yield error_frame("UPSTREAM_UNREACHABLE", "Error connecting to provider")

        if open_event:
            # Terminate a trailing event the upstream left open
            yield "\n"
        progress.sentinel_sent = True
        yield SSE_SENTINEL
