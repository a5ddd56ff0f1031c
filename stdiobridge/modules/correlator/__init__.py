"""
Correlator Module - Black Box Interface

Purpose: Match backend replies to the HTTP requests waiting for them
Interface: PendingRequests.register(), resolve(), cancel_all()
Hidden: Future bookkeeping, timeout timers

Replaceable with a mailbox/actor per session without affecting callers.
"""

from .correlator import TIMEOUT_MESSAGE, DuplicateRequestError, PendingRequests

__all__ = ["TIMEOUT_MESSAGE", "DuplicateRequestError", "PendingRequests"]
