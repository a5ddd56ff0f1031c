"""
API Module - Black Box Interface

Purpose: JSON-RPC wire models shared by every other module
Interface: pydantic models, envelope builders, error codes
Hidden: Validation details

The API module defines data only - it contains no transport logic.
"""

from .models import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    PARSE_ERROR,
    HealthResponse,
    JSONRPCError,
    JSONRPCMessage,
    SessionIdResponse,
    error_response,
    is_request,
    result_response,
)

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "PARSE_ERROR",
    "HealthResponse",
    "JSONRPCError",
    "JSONRPCMessage",
    "SessionIdResponse",
    "error_response",
    "is_request",
    "result_response",
]
