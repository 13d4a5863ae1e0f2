"""CLI entrypoint for mpi-blast.

The command line is the search tool's own command line::

    mpirun -n 16 mpi-blast blastp -db nr -query queries.fa -out hits.txt -evalue 1e-5

``-query`` and ``-out`` are taken out of the argument list; everything else,
starting with the tool name, is passed unchanged to each tool invocation.
Relay settings come from ``MPIBLAST_*`` environment variables or the YAML file
named by ``MPIBLAST_CONFIG`` (see :mod:`mpiblast.config`).
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from mpiblast import __version__
from mpiblast.config import load_config
from mpiblast.exceptions import ConfigValidationError, UsageError
from mpiblast.logging_config import setup_logging
from mpiblast.runner import SearchJob, run_local, run_mpi

logger = logging.getLogger(__name__)

USAGE = (
    "Usage: mpi-blast <search-tool> -query <query-file> -out <output-file> "
    "[other search tool args ...]\n"
    "\n"
    "Example: mpirun -n 8 mpi-blast blastp -db nr -query queries.fa -out hits.txt -outfmt 6\n"
    "\n"
    "Environment:\n"
    "  MPIBLAST_TRANSPORT        mpi (default) or local\n"
    "  MPIBLAST_LOCAL_WORKERS    worker threads in local mode (default 2)\n"
    "  MPIBLAST_BLOCK_SIZE       query bytes per block (default 20000)\n"
    "  MPIBLAST_CONFIG           YAML file with relay settings\n"
    "  MPIBLAST_LOG_LEVEL        DEBUG, INFO, WARNING, ERROR\n"
)

EXTRACTED_FLAGS = ("-query", "-out")


def parse_command_line(argv: Sequence[str]) -> SearchJob:
    """Split our arguments into a SearchJob.

    Args:
        argv: Arguments after the program name

    Returns:
        SearchJob whose command is every argument except -query/-out and their values

    Raises:
        UsageError: If -query, -out or the tool name is missing
    """
    values = {}
    command: List[str] = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in EXTRACTED_FLAGS:
            if i + 1 >= len(argv):
                raise UsageError(f"{arg} requires a file name", argument=arg)
            values[arg] = argv[i + 1]
            i += 2
        else:
            command.append(arg)
            i += 1

    for flag in EXTRACTED_FLAGS:
        if flag not in values:
            raise UsageError(f"missing required argument {flag}", argument=flag)
    if not command:
        raise UsageError("missing search tool command")

    return SearchJob(
        query_path=Path(values["-query"]),
        output_path=Path(values["-out"]),
        command=tuple(command),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    if argv and argv[0] in ("-h", "--help"):
        sys.stdout.write(USAGE)
        return 0
    if argv and argv[0] == "--version":
        print(f"mpi-blast {__version__}")
        return 0

    try:
        job = parse_command_line(argv)
    except UsageError as exc:
        sys.stderr.write(f"{exc}\n\n{USAGE}")
        return 1

    setup_logging()

    try:
        config = load_config()
    except ConfigValidationError as exc:
        logger.error(str(exc))
        return 1

    if config.transport == "local":
        outcomes = run_local(job, config)
        return 0 if all(outcome.status == 0 for outcome in outcomes) else 1

    outcome = run_mpi(job, config)
    return 0 if outcome.status == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
