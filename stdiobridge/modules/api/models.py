"""
stdiobridge wire models.

These models define the JSON-RPC 2.0 envelope exchanged with upstream
clients and the backend process, plus the small JSON payloads served by
the HTTP surface.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes


PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INTERNAL_ERROR = -32603

RequestId = Union[StrictStr, StrictInt, StrictFloat, None]


class JSONRPCError(BaseModel):
    """Error member of a JSON-RPC response."""

    code: int = Field(..., description="JSON-RPC error code")
    message: str = Field(..., description="Short error description")
    data: Optional[Any] = Field(None, description="Optional error details")


class JSONRPCMessage(BaseModel):
    """
    Any JSON-RPC 2.0 message (request, notification or response).

    Only the shape is validated; unknown members are preserved so the
    message can be relayed untouched.
    """

    model_config = ConfigDict(extra="allow")

    jsonrpc: StrictStr = Field(default=JSONRPC_VERSION, description="Protocol version")
    id: RequestId = Field(None, description="Request identifier (absent for notifications)")
    method: Optional[StrictStr] = Field(None, description="Method name")
    params: Optional[Union[Dict[str, Any], list]] = Field(None, description="Method parameters")
    result: Optional[Any] = Field(None, description="Successful result")
    error: Optional[JSONRPCError] = Field(None, description="Error result")


class SessionIdResponse(BaseModel):
    """Freshly generated session identifier."""

    sessionId: str = Field(..., description="Opaque session identifier")


class HealthResponse(BaseModel):
    """Static liveness payload."""

    status: str = Field(default="ok")
    transport: str = Field(default="streamable-http")


def is_request(message: Dict[str, Any]) -> bool:
    """A message carrying an ``id`` member expects a reply; anything else is a notification."""
    return "id" in message


def result_response(request_id: Any, result: Any) -> Dict[str, Any]:
    """Build a JSON-RPC success envelope."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(
    code: int, message: str, request_id: Any = None, include_id: bool = True
) -> Dict[str, Any]:
    """
    Build a JSON-RPC error envelope.

    Args:
        code: JSON-RPC error code
        message: Human readable message
        request_id: Identifier of the failed request
        include_id: Omit the ``id`` member entirely when False (transport
            failures that happen before a request is known)

    Returns:
        Envelope dict ready to be JSON serialized
    """
    envelope: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if include_id:
        envelope["id"] = request_id
    envelope["error"] = JSONRPCError(code=code, message=message).model_dump(exclude_none=True)
    return envelope
