"""
Framing Module - Black Box Interface

Purpose: Turn the backend's stdout byte stream into JSON-RPC messages
Interface: FrameDecoder.feed(), encode_frame()
Hidden: Carry-over buffer, line splitting, JSON parsing

Newline is the only frame boundary on the backend transport.
"""

from .decoder import BufferOverflowError, FrameDecoder, encode_frame

__all__ = ["BufferOverflowError", "FrameDecoder", "encode_frame"]
