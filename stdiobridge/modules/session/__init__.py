"""
Session Module - Black Box Interface

Purpose: Manage session lifecycle (one backend process per session)
Interface: SessionStore.ensure_session(), get(), end_session(), close()
Hidden: Process spawning, exit handling, per-session decoding and dispatch

The store is an owned object: created with the bridge, closed with it.
"""

from .session import Session, SessionStore

__all__ = ["Session", "SessionStore"]
