"""
Process Module - Black Box Interface

Purpose: Own one spawned backend process and its stdio pipes
Interface: ProcessHandle.spawn(), write(), terminate()
Hidden: asyncio subprocess plumbing, pipe readers, stderr diagnostics

Replaceable with any transport that delivers bytes in and out.
"""

from .process import ProcessHandle, SpawnError

__all__ = ["ProcessHandle", "SpawnError"]
