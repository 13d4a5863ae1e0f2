"""Run a sequence search tool over a large query file with many workers.

Roles:
    mpiblast.coordinator  - hands out record-aligned query blocks on request
    mpiblast.worker       - runs the search tool once per block
    mpiblast.sink         - writes all tool output to one file
    mpiblast.runner       - picks the role for a rank, local and MPI launchers
"""

__version__ = "1.0.0"

from mpiblast.chunker import Block, Chunker, iter_blocks, next_block, read_line
from mpiblast.config import RelayConfig, load_config
from mpiblast.exceptions import (
    BlastRelayError,
    ConfigValidationError,
    UsageError,
    MalformedInputError,
    StorageError,
    TransportError,
    TransportAborted,
    ProtocolError,
    SubprocessLaunchError,
)
from mpiblast.logging_config import setup_logging

__all__ = [
    "__version__",
    "Block",
    "Chunker",
    "iter_blocks",
    "next_block",
    "read_line",
    "RelayConfig",
    "load_config",
    "BlastRelayError",
    "ConfigValidationError",
    "UsageError",
    "MalformedInputError",
    "StorageError",
    "TransportError",
    "TransportAborted",
    "ProtocolError",
    "SubprocessLaunchError",
    "setup_logging",
]
