"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from mpiblast.transport import LocalHub  # noqa: E402
from tests.synthetic_data import TOOL_SCRIPTS, write_tool  # noqa: E402


@pytest.fixture
def hub3():
    """Coordinator, sink and one worker."""
    return LocalHub(3)


@pytest.fixture
def tool(tmp_path):
    """Factory returning the argv of a stand-in search tool by name."""

    def _make(name: str):
        return write_tool(tmp_path, name, TOOL_SCRIPTS[name])

    return _make


@pytest.fixture
def query_file(tmp_path):
    """Factory writing query bytes to a file and returning its path."""

    def _write(data: bytes, name: str = "queries.fa") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write
