"""Realtime session initialization and the streaming socket."""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, WebSocket, WebSocketDisconnect

from tenant_gateway.dependencies import get_session_manager
from tenant_gateway.domain.models import RealtimeInitRequest
from tenant_gateway.domain.realtime.session_manager import (
    CLOSE_POLICY_VIOLATION, RealtimeSessionManager, SessionHandle, SessionRejected, error_frame
)

logger = logging.getLogger(__name__)

router = APIRouter()

STREAM_PATH = "/v1/realtime/stream"


def connection_url(request: Request, session_id: str) -> str:
    scheme = "wss" if request.url.scheme == "https" else "ws"
    return f"{scheme}://{request.url.netloc}{STREAM_PATH}?sid={session_id}"


@router.post("/v1/realtime/initialize")
async def initialize_session(
    body: RealtimeInitRequest,
    request: Request,
    x_tenant_id: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    manager: RealtimeSessionManager = Depends(get_session_manager),
):
    session = await manager.initialize(x_tenant_id, authorization, body)
    return {
        "sessionId": session.session_id,
        "connectionUrl": connection_url(request, session.session_id),
        "remainingBudget": session.remaining_budget,
    }


class RealtimeConnection:
    """One socket: a reader feeding an ordered queue, one worker consuming it.

    Frames are handled strictly one at a time. On disconnect, frames still
    queued are discarded; the exchange already in progress runs to completion.
    """

    def __init__(self, websocket: WebSocket, manager: RealtimeSessionManager, handle: SessionHandle):
        self.websocket = websocket
        self.manager = manager
        self.handle = handle
        self.frames: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.processed = 0
        self.discarded = 0

    async def run(self) -> None:
        worker = asyncio.create_task(self._work())
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    raw = message["bytes"].decode("utf-8", errors="replace")
                if raw is not None:
                    self.frames.put_nowait(raw)
        except WebSocketDisconnect:
            pass
        finally:
            self.closed = True
            self._drain()
            self.frames.put_nowait(None)
            await worker
            logger.info("realtime_connection_closed", extra={
                "tenant_id": self.handle.tenant_id,
                "session_id": self.handle.session_id,
                "processed": self.processed,
                "discarded": self.discarded,
            })

    def _drain(self) -> None:
        while not self.frames.empty():
            self.frames.get_nowait()
            self.discarded += 1

    async def _work(self) -> None:
        while True:
            raw = await self.frames.get()
            if raw is None:
                return
            try:
                reply = await self.manager.handle_frame(self.handle, raw)
            except Exception:
                logger.exception("realtime_frame_failed", extra={
                    "tenant_id": self.handle.tenant_id, "session_id": self.handle.session_id
                })
                reply = error_frame("Failed to process message")
            self.processed += 1

            if self.closed:
                continue
            try:
                await self.websocket.send_json(reply)
            except (WebSocketDisconnect, RuntimeError):
                # Socket went away between receive and send
                self.closed = True


@router.websocket(STREAM_PATH)
async def realtime_stream(
    websocket: WebSocket,
    sid: Optional[str] = Query(default=None),
    manager: RealtimeSessionManager = Depends(get_session_manager),
):
    await websocket.accept()
    try:
        handle = await manager.open(sid)
    except SessionRejected as e:
        logger.info("realtime_connection_rejected", extra={"session_id": sid, "reason": e.reason})
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=e.reason)
        return

    await RealtimeConnection(websocket, manager, handle).run()
