"""ngrokctl command-line interface.

Prints the public URL on stdout and everything else on stderr, so the
tunnel address can be captured by scripts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from .. import __version__
from ..core.config import Settings
from ..core.exceptions import (
    ConfigurationError,
    LaunchError,
    NgrokError,
    ParseError,
    ProcessExited,
    QueryError,
)
from .builder import NgrokBuilder
from .session import Ngrok

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_UNAVAILABLE = 69  # EX_UNAVAILABLE - service unavailable


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit for real-time output."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: bool = False,
) -> logging.Logger:
    """Set up logging with proper flushing and stderr output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for persistent logging
        quiet: If True, suppress all log output to stderr

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("ngrokctl")
    logger.setLevel(level.upper())

    # Clear existing handlers
    logger.handlers.clear()

    if not quiet:
        console = FlushingStreamHandler(sys.stderr)
        console.setLevel(level.upper())
        console.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always capture everything to file
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    return logger


def echo_stderr(message: str) -> None:
    """Echo to stderr (for status messages)."""
    click.echo(message, err=True)


def echo_stdout(message: str, flush: bool = True) -> None:
    """Echo to stdout (for primary output like URLs)."""
    click.echo(message, err=False)
    if flush:
        sys.stdout.flush()


class Context:
    """CLI context for sharing state."""

    def __init__(self) -> None:
        self.quiet: bool = False
        self.json_output: bool = False
        self.log_level: str = "INFO"
        self.log_file: Optional[str] = None
        self.settings: Optional[Settings] = None


pass_context = click.make_pass_decorator(Context, ensure=True)


def _load_settings(config_path: Optional[Path]) -> Settings:
    if config_path is None:
        return Settings()
    return Settings.from_yaml(config_path)


@click.group(invoke_without_command=True)
@click.option(
    "--quiet", "-q", is_flag=True, envvar="NGROKCTL_QUIET",
    help="Suppress all output except errors and the tunnel URL"
)
@click.option(
    "--json", "json_output", is_flag=True,
    help="Output tunnel information as JSON (implies --quiet)"
)
@click.option(
    "--log-level", "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO", envvar="NGROKCTL_LOG_LEVEL",
    help="Set logging verbosity [default: INFO]"
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, writable=True),
    envvar="NGROKCTL_LOG_FILE",
    help="Write logs to file in addition to stderr"
)
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="NGROKCTL_CONFIG",
    help="YAML file with ngrokctl settings"
)
@click.pass_context
def cli(
    ctx: click.Context,
    quiet: bool,
    json_output: bool,
    log_level: str,
    log_file: Optional[str],
    config_path: Optional[Path],
) -> None:
    """ngrokctl - Expose a local port through ngrok and print its public URL.

    \b
    Quick start:
      ngrokctl http 8080                      # Expose local port 8080
      ngrokctl http 8080 --json               # Machine readable output
      ngrokctl http 8080 -e ~/bin/ngrok       # Explicit ngrok binary

    \b
    Environment variables:
      NGROKCTL_EXECUTABLE       ngrok executable name or path
      NGROKCTL_API_URL          ngrok status API [default: http://127.0.0.1:4040]
      NGROKCTL_STARTUP_TIMEOUT  Seconds to wait for the tunnel
      NGROKCTL_LOG_LEVEL        Logging level

    Run 'ngrokctl COMMAND --help' for command-specific help.
    """
    ctx.ensure_object(Context)
    ctx.obj.quiet = quiet or json_output
    ctx.obj.json_output = json_output
    ctx.obj.log_level = log_level
    ctx.obj.log_file = log_file

    try:
        ctx.obj.settings = _load_settings(config_path)
    except (ConfigurationError, ValidationError) as e:
        echo_stderr(f"Error: Invalid configuration: {e}")
        ctx.exit(EXIT_USAGE)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.option(
    "-e", "--executable", metavar="PATH",
    help="ngrok executable [default: ngrok on PATH]"
)
@click.option(
    "--api-url", metavar="URL",
    help="ngrok status API base URL [default: http://127.0.0.1:4040]"
)
@click.option(
    "-t", "--timeout", type=click.FloatRange(min=0, min_open=True),
    metavar="SECONDS",
    help="Seconds to wait for ngrok to report the tunnel"
)
@pass_context
def http(
    ctx: Context,
    port: int,
    executable: Optional[str],
    api_url: Optional[str],
    timeout: Optional[float],
) -> None:
    """Expose a local HTTP port and print the public URL.

    \b
    Examples:
      ngrokctl http 8080                  # Basic usage
      ngrokctl http 3000 -t 30            # Wait up to 30s for ngrok
      ngrokctl http 8080 --json           # JSON output for scripts

    \b
    The tunnel URL is printed to stdout; ngrok keeps running until
    Ctrl+C.
    """
    logger = setup_logging(ctx.log_level, ctx.log_file, ctx.quiet)

    builder = NgrokBuilder(ctx.settings).http().port(port)
    if executable:
        builder = builder.executable(executable)
    if api_url:
        builder = builder.api_url(api_url)
    if timeout:
        builder = builder.startup_timeout(timeout)

    try:
        ngrok = builder.build()
    except NgrokError as e:
        echo_stderr(f"Error: {e}")
        sys.exit(EXIT_USAGE)

    exit_code = asyncio.run(_run_tunnel(
        ngrok,
        quiet=ctx.quiet,
        json_output=ctx.json_output,
        logger=logger,
    ))
    sys.exit(exit_code)


@cli.command()
@click.option("--show", is_flag=True, help="Show effective configuration")
@click.option("--example", is_flag=True, help="Print example YAML configuration")
@pass_context
def config(ctx: Context, show: bool, example: bool) -> None:
    """View ngrokctl configuration."""
    settings = ctx.settings or Settings()

    if show:
        if ctx.json_output:
            echo_stdout(json.dumps(settings.model_dump()))
            return
        echo_stderr("ngrokctl Configuration")
        echo_stderr("=" * 40)
        for key, value in settings.model_dump().items():
            echo_stderr(f"  {key}: {value}")

    elif example:
        example_config = {
            "executable": "${NGROK_BIN}",
            "api_url": "http://127.0.0.1:4040",
            "startup_timeout": 10.0,
            "poll_interval": 0.25,
            "request_timeout": 2.0,
            "shutdown_timeout": 5.0,
            "log_level": "INFO",
        }
        # Output YAML to stdout for easy redirection
        echo_stdout("# ngrokctl configuration file")
        echo_stdout("# Save as ngrokctl.yml and run: ngrokctl -c ngrokctl.yml http 8080")
        echo_stdout(yaml.dump(example_config, default_flow_style=False, sort_keys=False))

    else:
        echo_stderr("Usage: ngrokctl config [--show|--example]")
        echo_stderr("")
        echo_stderr("  --show     Display effective configuration")
        echo_stderr("  --example  Print example YAML configuration")


@cli.command()
@pass_context
def version(ctx: Context) -> None:
    """Show version and build information."""
    if ctx.json_output:
        echo_stdout(json.dumps({"version": __version__}))
        return
    echo_stdout(f"ngrokctl {__version__}")
    echo_stderr(f"Python {sys.version.split()[0]}")
    echo_stderr(f"Platform: {sys.platform}")


async def _run_tunnel(
    ngrok: Ngrok,
    quiet: bool = False,
    json_output: bool = False,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
) -> int:
    """Start ngrok, print its URL and wait for Ctrl+C or ngrok to exit.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if logger is None:
        logger = logging.getLogger("ngrokctl")
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        if not quiet:
            echo_stderr(f"Starting ngrok for localhost:{ngrok.port}...")

        async with ngrok:
            url_task = asyncio.ensure_future(ngrok.http())
            stop_task = asyncio.ensure_future(shutdown_event.wait())
            done, _ = await asyncio.wait(
                {url_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if url_task not in done:
                # Ctrl+C while ngrok is still coming up
                url_task.cancel()
                try:
                    await url_task
                except asyncio.CancelledError:
                    pass
                if not quiet:
                    echo_stderr("Interrupted before the tunnel came up.")
                return EXIT_SUCCESS
            stop_task.cancel()
            url = url_task.result()

            if json_output:
                echo_stdout(json.dumps({
                    "url": str(url),
                    "https_url": str(url.with_scheme("https")),
                    "protocol": ngrok.config.protocol.value,
                    "local_port": ngrok.port,
                    "pid": ngrok.pid,
                }))
            else:
                echo_stdout(str(url))
                if not quiet:
                    echo_stderr("")
                    echo_stderr(f"Forwarding {url} -> localhost:{ngrok.port}")
                    echo_stderr("")
                    echo_stderr("Press Ctrl+C to stop")
                    echo_stderr("-" * 40)

            while not shutdown_event.is_set():
                if not ngrok.is_alive:
                    echo_stderr(f"ngrok exited with code {ngrok.returncode}")
                    return EXIT_ERROR
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=0.5)
                except asyncio.TimeoutError:
                    pass

        if not quiet:
            echo_stderr("Tunnel closed.")
        return EXIT_SUCCESS

    except QueryError as e:
        echo_stderr(f"Error: {e}")
        return EXIT_UNAVAILABLE
    except (LaunchError, ParseError, ProcessExited) as e:
        echo_stderr(f"Error: {e}")
        logger.debug(f"Exception details: {e}", exc_info=True)
        return EXIT_ERROR
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)


def main() -> None:
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        echo_stderr("\nInterrupted")
        sys.exit(130)  # 128 + SIGINT(2)


if __name__ == "__main__":
    main()
