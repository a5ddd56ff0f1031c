"""
Gateway Module - Black Box Interface

Purpose: The bridge's HTTP entry points (SSE open, message post)
Interface: StdioGateway.handle_sse(), handle_message(), generate_session_id(), close()
Hidden: Session id resolution, interception, request/reply orchestration

The gateway only orchestrates the other modules.
"""

from .gateway import INTERCEPTED_METHODS, StdioGateway

__all__ = ["INTERCEPTED_METHODS", "StdioGateway"]
