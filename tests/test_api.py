"""
HTTP surface tests.

Tests cover:
- POST /mcp - Request relay, notifications, interception, errors
- POST /mcp/session - Session id generation
- GET /health, GET /healthz - Liveness payloads
- GET /metrics - Prometheus gauges
- Startup without MCP_COMMAND

These tests run the full application through FastAPI TestClient against
the scripted echo backend.
"""

import os
import sys
import uuid

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import MISSING_COMMAND, StubConfigProvider, make_backend_config
from stdiobridge.config.provider import EnvConfigProvider
from stdiobridge.main import create_app


@pytest.fixture
def client():
    """TestClient with lifespan, bridging to the echo backend."""
    app = create_app(StubConfigProvider(make_backend_config()))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def broken_client():
    """TestClient whose backend command cannot be spawned."""
    app = create_app(StubConfigProvider(make_backend_config(command=MISSING_COMMAND)))
    with TestClient(app) as c:
        yield c


def metric(text: str, name: str) -> float:
    for line in text.splitlines():
        if line.startswith(name + " "):
            return float(line.split()[1])
    raise AssertionError(f"metric {name} not found")


# =============================================================================
# Health Endpoints
# =============================================================================


def test_health(client):
    """Test the static liveness payload."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "transport": "streamable-http"}


def test_healthz(client):
    """Test the probe endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# =============================================================================
# Session Endpoint
# =============================================================================


def test_new_session_id_spawns_nothing(client):
    """Test POST /mcp/session only generates an identifier."""
    first = client.post("/mcp/session").json()["sessionId"]
    second = client.post("/mcp/session").json()["sessionId"]

    assert first != second
    assert str(uuid.UUID(first)) == first
    assert len(client.app.state.gateway.store) == 0


# =============================================================================
# Message Endpoint
# =============================================================================


def test_post_request(client):
    """Test a request is relayed and answered with the backend's reply."""
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}


def test_post_request_with_session_header(client):
    """Test the header routes to a named session."""
    response = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": "a", "method": "echo", "params": {"k": "v"}},
        headers={"X-Session-Id": "custom"},
    )

    assert response.json()["result"] == {"method": "echo", "params": {"k": "v"}}
    assert "custom" in client.app.state.gateway.store
    assert "default-session" not in client.app.state.gateway.store


def test_post_notification(client):
    """Test notifications are acknowledged with 202 and an empty object."""
    response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})

    assert response.status_code == 202
    assert response.json() == {}


@pytest.mark.parametrize(
    "method, result",
    [
        ("logging/setLevel", {}),
        ("resources/list", {"resources": []}),
    ],
)
def test_post_intercepted_method(client, method, result):
    """Test locally answered methods."""
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 2, "method": method, "params": {}})

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 2, "result": result}


def test_post_parse_error(client):
    """Test a body that is not JSON."""
    response = client.post("/mcp", content=b"{oops", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == {"code": -32700, "message": "Parse error"}


def test_post_spawn_failure(broken_client):
    """Test the backend cannot be started."""
    response = broken_client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    assert response.status_code == 500
    assert response.json() == {
        "jsonrpc": "2.0",
        "error": {"code": -32603, "message": "Failed to create session"},
    }
    assert len(broken_client.app.state.gateway.store) == 0


def test_sse_spawn_failure(broken_client):
    """Test opening a stream when the backend cannot be started."""
    response = broken_client.get("/mcp")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create session"}


def test_cors_headers(client):
    """Test cross-origin requests are allowed."""
    response = client.get("/health", headers={"Origin": "http://example.com"})

    assert response.headers["access-control-allow-origin"] == "*"


# =============================================================================
# Metrics
# =============================================================================


def test_metrics(client):
    """Test gauges reflect live sessions."""
    before = client.get("/metrics")
    assert before.status_code == 200
    assert before.headers["content-type"].startswith("text/plain")
    assert metric(before.text, "stdiobridge_active_sessions") == 0

    client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    after = client.get("/metrics").text

    assert metric(after, "stdiobridge_active_sessions") == 1
    assert metric(after, "stdiobridge_pending_requests") == 0
    assert metric(after, "stdiobridge_open_streams") == 0


# =============================================================================
# Startup
# =============================================================================


def test_startup_requires_backend_command(monkeypatch):
    """Test the application refuses to start without MCP_COMMAND."""
    monkeypatch.delenv("MCP_COMMAND", raising=False)
    app = create_app(EnvConfigProvider())

    with pytest.raises(ValueError, match="MCP_COMMAND"):
        with TestClient(app):
            pass


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
