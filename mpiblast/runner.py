"""Role dispatch and launchers.

Every process (or thread, in local mode) calls :func:`run_role` with its own
transport endpoint; the role id decides whether it coordinates, writes output
or runs searches. A fatal error in any role aborts the whole job unless
``abort_on_fatal`` is switched off.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

from mpiblast import protocol
from mpiblast.chunker import Chunker
from mpiblast.config import RelayConfig
from mpiblast.coordinator import Coordinator
from mpiblast.exceptions import BlastRelayError, ConfigValidationError, StorageError, TransportAborted
from mpiblast.logging_config import log_exception
from mpiblast.sink import Sink
from mpiblast.transport import LocalHub, Transport
from mpiblast.worker import WorkerRelay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchJob:
    """What to search: the query file, where results go, and the tool command."""

    query_path: Path
    output_path: Path
    command: Tuple[str, ...]


@dataclass
class RoleOutcome:
    rank: int
    status: int
    result: Any = None
    error: Optional[Exception] = None


def _run_coordinator(transport: Transport, job: SearchJob, config: RelayConfig):
    try:
        source = open(job.query_path, "rb")
    except OSError as exc:
        raise StorageError(
            f"Cannot open query file: {exc}",
            operation="open",
            file_path=str(job.query_path),
            original_error=exc,
        ) from exc

    with source:
        chunker = Chunker(
            source,
            limit=config.block_size,
            max_line_length=config.max_line_length,
            sentinel=config.header_sentinel,
        )
        coordinator = Coordinator(
            transport,
            chunker,
            fragment_size=config.fragment_size,
            strict_transport=config.strict_transport,
        )
        return coordinator.run()


def run_role(transport: Transport, job: SearchJob, config: RelayConfig) -> Any:
    """Run whichever role ``transport.rank`` stands for.

    Returns:
        The role's statistics object

    Raises:
        BlastRelayError: After the job has been aborted (when enabled)
    """
    rank = transport.rank
    if transport.size < protocol.MIN_WORLD_SIZE:
        raise ConfigValidationError(
            f"Need at least {protocol.MIN_WORLD_SIZE} roles (coordinator, sink, one worker); "
            f"got {transport.size}",
            key="size",
        )

    logger.debug(
        f"{protocol.role_name(rank)} starting (protocol v{protocol.PROTOCOL_VERSION}, {transport.size} roles)"
    )

    try:
        if rank == protocol.COORDINATOR:
            return _run_coordinator(transport, job, config)
        if rank == protocol.SINK:
            return Sink(transport, job.output_path).run()
        relay = WorkerRelay(
            transport,
            job.command,
            read_size=config.read_size,
            strict_transport=config.strict_transport,
        )
        return relay.run()
    except TransportAborted:
        logger.warning(f"{protocol.role_name(rank)} stopped: job aborted by another role")
        raise
    except BlastRelayError as exc:
        log_exception(logger, f"{protocol.role_name(rank)} failed", exc)
        if config.abort_on_fatal:
            transport.abort(1)
        raise


def _safe_run_role(transport: Transport, job: SearchJob, config: RelayConfig) -> RoleOutcome:
    try:
        return RoleOutcome(transport.rank, 0, run_role(transport, job, config))
    except Exception as e:
        return RoleOutcome(transport.rank, -1, error=e)


def run_local(job: SearchJob, config: RelayConfig, workers: Optional[int] = None) -> List[RoleOutcome]:
    """Run every role as a thread of this process.

    Args:
        job: Search job shared by all roles
        config: Relay configuration
        workers: Number of worker roles (defaults to ``config.local_workers``)

    Returns:
        One RoleOutcome per role, ordered by role id
    """
    workers = config.local_workers if workers is None else workers
    size = protocol.FIRST_WORKER + max(0, workers)
    hub = LocalHub(size)

    logger.info(f"Starting local run with {workers} worker(s)")

    outcomes: List[RoleOutcome] = []
    with ThreadPoolExecutor(max_workers=size, thread_name_prefix="role") as executor:
        futures = [
            executor.submit(_safe_run_role, hub.endpoint(rank), job, config)
            for rank in range(size)
        ]
        for future in as_completed(futures):
            outcomes.append(future.result())

    outcomes.sort(key=lambda outcome: outcome.rank)
    failed = [o for o in outcomes if o.status != 0]
    logger.info(
        f"Local run complete: {len(outcomes) - len(failed)} role(s) succeeded, {len(failed)} failed"
    )
    return outcomes


def run_mpi(job: SearchJob, config: RelayConfig) -> RoleOutcome:
    """Run this process's role in an MPI job (launched by mpirun)."""
    from mpiblast.transport.mpi import MPITransport

    transport = MPITransport()
    outcome = _safe_run_role(transport, job, config)
    if outcome.status == 0:
        transport.comm.Barrier()
    return outcome
