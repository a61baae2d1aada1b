"""ngrokctl - Launch ngrok and discover its public URL."""

__version__ = "0.1.0"
__author__ = "ngrokctl contributors"

from .client.builder import NgrokBuilder, builder
from .client.session import Ngrok, Tunnel
from .core.config import Protocol, Settings, TunnelConfig
from .core.exceptions import (
    BuilderError,
    ConfigurationError,
    ExecutableNotFound,
    LaunchError,
    NgrokError,
    ParseError,
    ProcessExited,
    ProcessSpawnFailure,
    QueryError,
    ResponseParseFailure,
    StatusUnreachable,
    TunnelNotFound,
)

__all__ = [
    "builder",
    "NgrokBuilder",
    "Ngrok",
    "Tunnel",
    "Protocol",
    "Settings",
    "TunnelConfig",
    "NgrokError",
    "ConfigurationError",
    "LaunchError",
    "BuilderError",
    "ExecutableNotFound",
    "ProcessSpawnFailure",
    "QueryError",
    "StatusUnreachable",
    "ParseError",
    "ResponseParseFailure",
    "TunnelNotFound",
    "ProcessExited",
    "__version__",
]
