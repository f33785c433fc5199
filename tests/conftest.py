"""Pytest configuration and shared fixtures."""

import io
import sys
from pathlib import Path
from typing import List

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from console_manager import ConsoleManager  # noqa: E402
from models import RenderState  # noqa: E402


def python_command(code: str) -> List[str]:
    """Command line running `code` in a fresh interpreter."""
    return [sys.executable, "-c", code]


@pytest.fixture
def terminal() -> io.StringIO:
    """Stands in for the terminal the status line is painted on."""
    return io.StringIO()


@pytest.fixture
def err_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(terminal: io.StringIO) -> ConsoleManager:
    return ConsoleManager(RenderState(label="test", columns=80), terminal)
