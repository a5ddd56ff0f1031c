#!/usr/bin/env python3
"""
stdiobridge - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes the gateway
3. Exposes the HTTP routes

All bridging logic is in the modules, following black box principles.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stdiobridge import __version__
from stdiobridge.config.provider import ConfigProvider, EnvConfigProvider
from stdiobridge.logging_config import configure_logging
from stdiobridge.modules.api import HealthResponse, SessionIdResponse
from stdiobridge.modules.gateway import StdioGateway

logger = logging.getLogger(__name__)


def create_app(config_provider: Optional[ConfigProvider] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config_provider: Source of configuration (environment by default)

    Returns:
        Configured application. The backend configuration is read when the
        application starts; a missing MCP_COMMAND aborts startup.
    """
    config_provider = config_provider or EnvConfigProvider()
    api_config = config_provider.get_api_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - initialize and cleanup resources.
        """
        logger.info("Starting stdio bridge...")

        backend_config = config_provider.get_backend_config()
        app.state.gateway = StdioGateway(backend_config, max_body_bytes=api_config.max_body_bytes)
        logger.info(f"Backend command: {backend_config.command} {' '.join(backend_config.args)}")
        logger.info(f"HTTP endpoint: http://{api_config.host}:{api_config.port}/mcp")

        yield

        logger.info("Shutting down...")
        await app.state.gateway.close()
        logger.info("stdio bridge shutdown complete")

    app = FastAPI(
        title="stdiobridge",
        description="HTTP and Server-Sent Events front door for stdio JSON-RPC servers",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # MCP Endpoints

    @app.get("/mcp")
    async def open_stream(request: Request):
        """
        SSE stream of backend-originated messages for a session.

        Returns:
            200: text/event-stream, first frame ``:ok``
            500: Session could not be created
        """
        try:
            return await request.app.state.gateway.handle_sse(request)
        except Exception as e:
            logger.error(f"Error handling SSE request: {e}")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.post("/mcp")
    async def post_message(request: Request):
        """
        Submit one JSON-RPC request or notification.

        Returns:
            200: JSON-RPC reply (or synthetic timeout/interception result)
            202: Notification accepted
            400: Malformed JSON-RPC
            500: Session could not be created
        """
        try:
            return await request.app.state.gateway.handle_message(request)
        except Exception as e:
            logger.error(f"Error handling message request: {e}")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.post("/mcp/session", response_model=SessionIdResponse)
    async def new_session_id(request: Request):
        """
        Generate a session identifier. No backend process is started.
        """
        return SessionIdResponse(sessionId=request.app.state.gateway.generate_session_id())

    # Health/Monitoring Endpoints

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Static liveness payload.
        """
        return HealthResponse()

    @app.get("/healthz")
    async def healthz():
        """
        Minimal health check endpoint for Kubernetes readiness/liveness probes.
        """
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics(request: Request):
        """
        Prometheus-compatible metrics endpoint.
        """
        sessions = request.app.state.gateway.store.list_sessions()
        pending = sum(len(s.pending) for s in sessions)
        streaming = sum(1 for s in sessions if s.stream_sink is not None)

        metrics_text = f"""# HELP stdiobridge_active_sessions Number of sessions with a live backend process
# TYPE stdiobridge_active_sessions gauge
stdiobridge_active_sessions {len(sessions)}
# HELP stdiobridge_pending_requests Requests waiting for a backend reply
# TYPE stdiobridge_pending_requests gauge
stdiobridge_pending_requests {pending}
# HELP stdiobridge_open_streams Sessions with an attached SSE stream
# TYPE stdiobridge_open_streams gauge
stdiobridge_open_streams {streaming}
"""
        return Response(content=metrics_text, media_type="text/plain")

    return app


load_dotenv()
configure_logging(EnvConfigProvider().get_api_config().log_level)

app = create_app()
