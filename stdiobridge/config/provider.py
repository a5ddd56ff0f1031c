"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import List, Protocol

DEFAULT_FATAL_STDERR_PATTERNS = [
    "Error: Unable to access jarfile",
    "Could not find or load main class",
]


@dataclass
class BackendConfig:
    """Backend process configuration."""
    command: str
    args: List[str] = field(default_factory=list)
    request_timeout: float = 30.0
    max_buffer_bytes: int = 10 * 1024 * 1024
    fatal_stderr_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_FATAL_STDERR_PATTERNS)
    )
    default_session_id: str = "default-session"


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    log_level: str
    cors_origins: List[str]
    max_body_bytes: int


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_backend_config(self) -> BackendConfig:
        """Get backend process configuration."""
        ...

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...


def _split(value: str, sep: str) -> List[str]:
    return [item.strip() for item in value.split(sep) if item.strip()]


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_backend_config(self) -> BackendConfig:
        """Get backend process configuration from environment variables."""
        command = os.getenv("MCP_COMMAND")
        if not command:
            raise ValueError(
                "MCP_COMMAND environment variable is required. "
                "Set it to the executable of the stdio JSON-RPC server to bridge. "
                "Example: MCP_COMMAND=java MCP_ARGS=-jar,/opt/server.jar"
            )

        patterns_env = os.getenv("MCP_FATAL_STDERR_PATTERNS")

        return BackendConfig(
            command=command,
            # Arguments are comma separated, not shell split
            args=os.getenv("MCP_ARGS").split(",") if os.getenv("MCP_ARGS") else [],
            request_timeout=float(os.getenv("MCP_REQUEST_TIMEOUT", "30")),
            max_buffer_bytes=int(os.getenv("MCP_MAX_BUFFER_BYTES", str(10 * 1024 * 1024))),
            fatal_stderr_patterns=(
                _split(patterns_env, "|") if patterns_env else list(DEFAULT_FATAL_STDERR_PATTERNS)
            ),
            default_session_id=os.getenv("MCP_DEFAULT_SESSION_ID", "default-session"),
        )

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=int(os.getenv("PORT", "3000")),
            host=os.getenv("HOST", "0.0.0.0"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=_split(os.getenv("CORS_ORIGINS", "*"), ","),
            max_body_bytes=int(os.getenv("MAX_BODY_BYTES", str(10 * 1024 * 1024))),
        )
