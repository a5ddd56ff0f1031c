"""
Stream Module - Black Box Interface

Purpose: Deliver server-originated messages to a session's SSE client
Interface: attach(), detach(), push(), StreamSink.events()
Hidden: Queueing, SSE event encoding

No buffering or replay: messages pushed without a live sink are dropped.
"""

from .sink import STREAM_OPENED, StreamSink, attach, detach, format_event, push

__all__ = ["STREAM_OPENED", "StreamSink", "attach", "detach", "format_event", "push"]
