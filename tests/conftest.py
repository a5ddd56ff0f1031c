"""
Shared pytest fixtures for stdiobridge tests.

This module provides common fixtures including:
- A scripted stdio backend (fixtures/echo_backend.py) spawned with the
  current interpreter
- Backend configuration and gateway fixtures wired to that backend
- make_request(): build Starlette requests without an HTTP server
"""

import json
import os
import sys
from typing import Dict, Optional

import pytest
import pytest_asyncio
from starlette.requests import Request

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stdiobridge.config.provider import APIConfig, BackendConfig
from stdiobridge.modules.gateway import StdioGateway

ECHO_BACKEND = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures", "echo_backend.py")
MISSING_COMMAND = "/nonexistent/stdiobridge-test-backend"

# Short enough to keep timeout tests fast, long enough for a cold interpreter
TEST_REQUEST_TIMEOUT = 0.5


def make_backend_config(**overrides) -> BackendConfig:
    """Backend config pointing at the scripted echo backend."""
    values = {
        "command": sys.executable,
        "args": ["-u", ECHO_BACKEND],
        "request_timeout": 5.0,
    }
    values.update(overrides)
    return BackendConfig(**values)


def make_request(
    method: str = "POST",
    path: str = "/mcp",
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
    body=None,
) -> Request:
    """
    Build a Starlette request as the HTTP framework would deliver it.

    Args:
        method: HTTP method
        path: Request path
        query: Raw query string (e.g. "sessionId=abc")
        headers: Request headers
        body: dict/list (JSON encoded), str/bytes (sent as-is) or None
    """
    if body is None:
        raw = b""
    elif isinstance(body, (dict, list)):
        raw = json.dumps(body).encode()
    elif isinstance(body, str):
        raw = body.encode()
    else:
        raw = body

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": raw, "more_body": False}

    return Request(scope, receive)


def response_json(response):
    """Decode a JSONResponse body."""
    return json.loads(response.body)


class StubConfigProvider:
    """ConfigProvider returning fixed configuration."""

    def __init__(self, backend: BackendConfig, api: Optional[APIConfig] = None):
        self.backend = backend
        self.api = api or APIConfig(
            port=3000,
            host="127.0.0.1",
            debug=False,
            log_level="INFO",
            cors_origins=["*"],
            max_body_bytes=1024 * 1024,
        )

    def get_backend_config(self) -> BackendConfig:
        return self.backend

    def get_api_config(self) -> APIConfig:
        return self.api


@pytest.fixture
def backend_config():
    """Backend config for the echo backend."""
    return make_backend_config()


@pytest_asyncio.fixture
async def gateway(backend_config):
    """Gateway wired to the echo backend; every spawned process is stopped afterwards."""
    gw = StdioGateway(backend_config, max_body_bytes=64 * 1024)
    yield gw
    await gw.close()


@pytest_asyncio.fixture
async def fast_timeout_gateway():
    """Gateway whose requests time out quickly."""
    gw = StdioGateway(make_backend_config(request_timeout=TEST_REQUEST_TIMEOUT))
    yield gw
    await gw.close()


@pytest_asyncio.fixture
async def broken_gateway():
    """Gateway whose backend command cannot be spawned."""
    gw = StdioGateway(make_backend_config(command=MISSING_COMMAND))
    yield gw
    await gw.close()
