"""
stdiobridge - HTTP/SSE front door for stdio JSON-RPC servers

Exposes a backend that only speaks newline-delimited JSON-RPC 2.0 over its
stdin/stdout as an HTTP POST + Server-Sent Events endpoint.

Architecture:
- Each module is self-contained with clear interfaces
- Modules communicate only through their public API
- The API layer (main.py) only orchestrates

Modules:
- api: JSON-RPC wire models and envelope helpers
- process: Backend child process handle
- framing: Newline-delimited frame decoding
- correlator: Request/response correlation with timeouts
- stream: Per-session SSE delivery channel
- session: Session entity and store
- gateway: HTTP entry points tying the modules together
"""

__version__ = "1.0.0"
