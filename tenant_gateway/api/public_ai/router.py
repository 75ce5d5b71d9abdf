"""Public AI API Router - tenant-scoped completions relayed to the tenant's provider."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Response
from fastapi.responses import StreamingResponse

from tenant_gateway.dependencies import get_pipeline
from tenant_gateway.domain.models import CompletionRequest
from tenant_gateway.domain.pipeline import AdmissionPipeline, StreamedResult

router = APIRouter()


@router.post("/{tenant_id}/v1/completions")
async def completions(
    tenant_id: str,
    request: CompletionRequest,
    authorization: Optional[str] = Header(default=None),
    pipeline: AdmissionPipeline = Depends(get_pipeline),
) -> Any:
    """Buffered or streamed completion. Provider status and body are relayed untouched."""
    result = await pipeline.complete(tenant_id, authorization, request)

    if isinstance(result, StreamedResult):
        headers = dict(result.headers)
        headers["Cache-Control"] = "no-cache"
        return StreamingResponse(result.chunks, media_type="text/event-stream", headers=headers)

    payload = result.response
    return Response(
        content=payload.body,
        status_code=payload.status_code,
        media_type=payload.content_type,
        headers=result.headers,
    )
