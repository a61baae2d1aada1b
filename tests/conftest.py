"""Shared fixtures."""

import logging

import pytest


def _write_script(path, body):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def fake_ngrok(tmp_path):
    """An executable that records its arguments and then idles like ngrok."""
    return _write_script(
        tmp_path / "ngrok",
        'echo "$@" > "$(dirname "$0")/args.txt"\nexec sleep 30\n',
    )


@pytest.fixture
def crashing_ngrok(tmp_path):
    """An executable that exits straight away with status 3."""
    return _write_script(tmp_path / "ngrok-crash", "exit 3\n")


@pytest.fixture
def stubborn_ngrok(tmp_path):
    """An executable that ignores SIGTERM."""
    return _write_script(
        tmp_path / "ngrok-stubborn",
        "trap '' TERM\nwhile :; do sleep 1; done\n",
    )


@pytest.fixture(autouse=True)
def reset_cli_logging():
    """Drop handlers the CLI attaches so they don't outlive the test's streams."""
    yield
    logger = logging.getLogger("ngrokctl")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
