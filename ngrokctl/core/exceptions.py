"""ngrokctl exceptions."""

from typing import Optional


class NgrokError(Exception):
    """Base exception for all ngrokctl errors."""

    pass


class ConfigurationError(NgrokError):
    """Configuration-related errors."""

    pass


class LaunchError(NgrokError):
    """The ngrok child process could not be launched."""

    pass


class BuilderError(LaunchError):
    """The builder is missing a required setting or holds an invalid one."""

    pass


class ExecutableNotFound(LaunchError):
    """The ngrok executable could not be located."""

    def __init__(self, executable: str, message: Optional[str] = None):
        super().__init__(message or f"ngrok executable not found: {executable}")
        self.executable = executable


class ProcessSpawnFailure(LaunchError):
    """The OS refused to create the child process."""

    pass


class QueryError(NgrokError):
    """The local status API could not be queried."""

    pass


class StatusUnreachable(QueryError):
    """The status API did not answer within the wait window."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(NgrokError):
    """A status API response could not be interpreted."""

    pass


class ResponseParseFailure(ParseError):
    """The status API body was malformed or lacked the public URL."""

    pass


class TunnelNotFound(ResponseParseFailure):
    """No tunnel for the requested port appeared in the status API."""

    def __init__(self, port: int, api_url: str):
        super().__init__(
            f"Expected a tunnel for port {port} but found none under "
            f"ngrok's JSON API @ {api_url}"
        )
        self.port = port
        self.api_url = api_url


class ProcessExited(NgrokError):
    """The ngrok child process is no longer running."""

    def __init__(self, returncode: Optional[int]):
        super().__init__(f"ngrok process exited with code {returncode}")
        self.returncode = returncode
