import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from tenant_gateway.domain.credentials import CredentialValidator
from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import session_history_key, session_state_key
from tenant_gateway.domain.models import HistoryEntry, RealtimeInitRequest, SessionState, TenantConfig
from tenant_gateway.domain.realtime.backends import RealtimeBackend, history_content
from tenant_gateway.domain.tenants import TenantResolver, is_valid_tenant_id
from tenant_gateway.errors import (
    InsufficientBudget, MissingTenantHeader, TenantNotFound, UnknownTenant, UnsupportedBackend
)

logger = logging.getLogger(__name__)

INPUT_TYPES = ("text", "audio")
# Policy violation
CLOSE_POLICY_VIOLATION = 1008


class SessionRejected(Exception):
    """The connection must be closed with 1008; `reason` goes in the close frame."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass
class InitializedSession:
    session_id: str
    remaining_budget: int


@dataclass
class SessionHandle:
    session_id: str
    tenant_id: str
    state: SessionState


def make_session_id(tenant_id: str) -> str:
    return f"tenant:{tenant_id}:session:{uuid.uuid4()}"


def parse_session_id(sid: Optional[str]) -> Tuple[str, str]:
    """Split `tenant:<tenantId>:session:<uuid>` into (tenant_id, uuid)."""
    if not sid:
        raise SessionRejected("Missing session ID")
    parts = sid.split(":")
    if len(parts) != 4 or parts[0] != "tenant" or parts[2] != "session" or not is_valid_tenant_id(parts[1]):
        raise SessionRejected("Invalid session ID format")
    try:
        uuid.UUID(parts[3])
    except ValueError:
        raise SessionRejected("Invalid session ID format")
    return parts[1], parts[3]


def error_frame(message: str) -> Dict[str, Any]:
    return {"outputType": "error", "data": message}


class RealtimeSessionManager:
    """Session lifecycle: Created (record stored) -> Active (socket validated) -> Closed.

    Records are never deleted here; they age out through store retention.
    """

    def __init__(
        self,
        store: StateStore,
        tenants: TenantResolver,
        credentials: CredentialValidator,
        backends: Dict[str, RealtimeBackend],
        default_budget: int,
    ):
        self.store = store
        self.tenants = tenants
        self.credentials = credentials
        self.backends = backends
        self.default_budget = default_budget

    async def initialize(
        self, tenant_id: Optional[str], authorization: Optional[str], request: RealtimeInitRequest
    ) -> InitializedSession:
        if not tenant_id:
            raise MissingTenantHeader()

        if request.backend not in self.backends:
            allowed = ", ".join(sorted(self.backends))
            raise UnsupportedBackend(f"Invalid backend. Must be one of: {allowed}")

        try:
            tenant = await self.tenants.resolve(tenant_id)
        except UnknownTenant:
            raise TenantNotFound()

        budget = await self._remaining_budget(tenant, authorization)
        if budget < 1:
            raise InsufficientBudget("Insufficient token balance")

        session_id = make_session_id(tenant_id)
        state = SessionState(
            tenant_id=tenant_id,
            backend=request.backend,
            system_prompt=request.system_prompt,
            tools=request.tools,
            tts_service=request.tts_service,
            cache_key=request.cache_key,
            tokens_used=0,
            created_at=datetime.now(timezone.utc),
        )
        await self.store.set(session_state_key(tenant_id, session_id), state.to_json())
        await self.store.delete(session_history_key(tenant_id, session_id))

        logger.info("realtime_session_created", extra={
            "tenant_id": tenant_id, "session_id": session_id, "backend": request.backend
        })
        return InitializedSession(session_id=session_id, remaining_budget=budget)

    async def _remaining_budget(self, tenant: TenantConfig, authorization: Optional[str]) -> int:
        if authorization:
            identity = await self.credentials.validate(authorization, tenant.tenant_id)
            return identity.remaining_budget
        if tenant.realtime_token_budget is not None:
            return tenant.realtime_token_budget
        return self.default_budget

    async def open(self, sid: Optional[str]) -> SessionHandle:
        """Validate a connection upgrade. Raises SessionRejected on any failure."""
        tenant_id, _ = parse_session_id(sid)

        raw = await self.store.get(session_state_key(tenant_id, sid))
        if raw is None:
            raise SessionRejected("Invalid or expired session")

        try:
            state = SessionState.model_validate_json(raw)
        except ValidationError:
            logger.warning("realtime_session_corrupt", extra={"tenant_id": tenant_id, "session_id": sid})
            raise SessionRejected("Invalid or expired session")
        if state.tenant_id != tenant_id:
            raise SessionRejected("Session does not belong to tenant")

        logger.info("realtime_connection_opened", extra={"tenant_id": tenant_id, "session_id": sid})
        return SessionHandle(session_id=sid, tenant_id=tenant_id, state=state)

    async def handle_frame(self, handle: SessionHandle, raw: str) -> Dict[str, Any]:
        """Process one inbound frame and return the outbound one.

        Malformed frames get an error frame; the connection stays open.
        """
        try:
            frame = json.loads(raw)
        except ValueError:
            return error_frame("Invalid JSON frame")
        if not isinstance(frame, dict):
            return error_frame("Frame must be a JSON object")

        input_type = frame.get("inputType")
        data = frame.get("data")
        if input_type not in INPUT_TYPES:
            return error_frame(f"Unsupported input type: {input_type}")
        if not isinstance(data, str):
            return error_frame("Frame data must be a string")

        backend = self.backends.get(handle.state.backend)
        if backend is None:
            return error_frame(f"Backend {handle.state.backend} is not available")

        # The user turn is recorded even if the backend then fails
        await self._append(handle, "user", input_type, history_content(input_type, data))
        exchange = await backend.reply(handle.state, input_type, data)
        await self._append(handle, "assistant", exchange.output_type, exchange.assistant_content)

        tokens_used = await self.store.increment_field(
            session_state_key(handle.tenant_id, handle.session_id), "tokensUsed", 1
        )
        if tokens_used is not None:
            handle.state.tokens_used = tokens_used

        return {"outputType": exchange.output_type, "data": exchange.data}

    async def _append(self, handle: SessionHandle, role: str, entry_type: str, content: str) -> None:
        entry = HistoryEntry(role=role, type=entry_type, content=content, timestamp=int(time.time() * 1000))
        await self.store.rpush(session_history_key(handle.tenant_id, handle.session_id), entry.to_json())
