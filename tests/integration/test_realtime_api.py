"""Realtime initialize endpoint and the streaming socket."""
import asyncio
import json
import uuid

import pytest
from starlette.websockets import WebSocketDisconnect

from tenant_gateway.domain.keys import session_history_key, session_state_key

from support import put_credential, put_tenant, tenant_document

TENANT = {"X-Tenant-Id": "abc"}


def initialize(gateway, backend="openai_realtime", headers=None, **extra):
    return gateway.post(
        "/v1/realtime/initialize",
        json=dict(extra, backend=backend),
        headers=TENANT if headers is None else headers,
    )


def history(store, sid):
    return [json.loads(item) for item in asyncio.run(store.lrange(session_history_key("abc", sid)))]


def test_initialize_returns_connection_details(gateway, seeded_store):
    response = initialize(gateway, systemPrompt="You are terse", ttsService="none")

    assert response.status_code == 200
    data = response.json()
    assert data["sessionId"].startswith("tenant:abc:session:")
    assert data["connectionUrl"] == f"ws://testserver/v1/realtime/stream?sid={data['sessionId']}"
    assert data["remainingBudget"] == 100

    state = json.loads(asyncio.run(seeded_store.get(session_state_key("abc", data["sessionId"]))))
    assert state["tokensUsed"] == 0
    assert state["systemPrompt"] == "You are terse"


def test_unsupported_backend(gateway):
    response = initialize(gateway, backend="unknown")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "UNSUPPORTED_BACKEND"


def test_missing_tenant_header(gateway):
    response = initialize(gateway, headers={})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_TENANT"


def test_unknown_tenant(gateway):
    response = initialize(gateway, headers={"X-Tenant-Id": "nope"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "TENANT_NOT_FOUND"


def test_missing_backend_field(gateway):
    response = gateway.post("/v1/realtime/initialize", json={}, headers=TENANT)
    assert response.status_code == 400
    assert response.json()["error"]["details"]["fields"][0]["field"] == "backend"


def test_insufficient_budget(gateway, seeded_store):
    document = tenant_document(tenant_id="quiet")
    document["realtimeTokenBudget"] = 0
    asyncio.run(put_tenant(seeded_store, document))

    response = initialize(gateway, headers={"X-Tenant-Id": "quiet"})
    assert response.status_code == 429
    assert response.json()["error"]["code"] == "INSUFFICIENT_BUDGET"


def test_credential_budget_is_reported(gateway, seeded_store):
    token = asyncio.run(put_credential(seeded_store, budget=12))

    response = initialize(gateway, headers=dict(TENANT, Authorization=f"Bearer {token}"))
    assert response.status_code == 200
    assert response.json()["remainingBudget"] == 12


@pytest.mark.parametrize("query", [
    "?sid=tenant:abc:session:not-a-real-id",
    f"?sid=tenant:abc:session:{uuid.uuid4()}",
    "?sid=nonsense",
    "",
])
def test_invalid_session_closes_with_policy_violation(gateway, query):
    with gateway.websocket_connect(f"/v1/realtime/stream{query}") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()
    assert exc_info.value.code == 1008


def test_message_loop(gateway, seeded_store):
    sid = initialize(gateway).json()["sessionId"]

    with gateway.websocket_connect(f"/v1/realtime/stream?sid={sid}") as ws:
        ws.send_text(json.dumps({"inputType": "text", "data": "hello"}))
        assert ws.receive_json() == {"outputType": "text", "data": "Hello back! You sent: hello"}

        ws.send_text(json.dumps({"inputType": "audio", "data": "AAEC"}))
        assert ws.receive_json() == {"outputType": "audio", "data": "AAEC"}

        entries = history(seeded_store, sid)
        state = json.loads(asyncio.run(seeded_store.get(session_state_key("abc", sid))))

    assert [(e["role"], e["type"]) for e in entries] == [
        ("user", "text"), ("assistant", "text"), ("user", "audio"), ("assistant", "audio"),
    ]
    assert entries[0]["content"] == "hello"
    assert entries[2]["content"] == "[audio input]"
    assert state["tokensUsed"] == 2


def test_unknown_input_type_keeps_connection_open(gateway, seeded_store):
    sid = initialize(gateway).json()["sessionId"]

    with gateway.websocket_connect(f"/v1/realtime/stream?sid={sid}") as ws:
        ws.send_text(json.dumps({"inputType": "video", "data": "x"}))
        error = ws.receive_json()
        assert error["outputType"] == "error"

        ws.send_text(json.dumps({"inputType": "text", "data": "still here"}))
        assert ws.receive_json()["data"] == "Hello back! You sent: still here"

        entries = history(seeded_store, sid)

    assert len(entries) == 2
