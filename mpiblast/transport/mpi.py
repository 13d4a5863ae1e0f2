"""MPI transport built on mpi4py.

Worker roles receive on a helper thread while the main thread sends, so the
MPI library is initialised with ``MPI_THREAD_MULTIPLE``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import mpi4py

mpi4py.rc.thread_level = "multiple"

from mpi4py import MPI  # noqa: E402

from mpiblast.exceptions import TransportError  # noqa: E402
from mpiblast.transport.base import ANY_SOURCE, Message, Transport  # noqa: E402

logger = logging.getLogger(__name__)


class MPITransport(Transport):
    """Transport over an MPI communicator (``COMM_WORLD`` by default)."""

    def __init__(self, comm: Optional[Any] = None):
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        # Raise MPI.Exception instead of killing the job on errors
        self.comm.Set_errhandler(MPI.ERRORS_RETURN)
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

        provided = MPI.Query_thread()
        if provided < MPI.THREAD_MULTIPLE:
            logger.warning(
                f"MPI library provides thread level {provided}, below THREAD_MULTIPLE; "
                "worker feeder threads may not be safe"
            )

    def send(self, dest: int, tag: int, payload: bytes = b"") -> None:
        try:
            self.comm.Send([payload, MPI.BYTE], dest=dest, tag=tag)
        except MPI.Exception as exc:
            raise TransportError(
                f"MPI send failed: {exc.Get_error_string()}",
                operation="send",
                peer=dest,
                tag=tag,
                original_error=exc,
            ) from exc

    def recv(self, source: int = ANY_SOURCE) -> Message:
        mpi_source = MPI.ANY_SOURCE if source == ANY_SOURCE else source
        status = MPI.Status()
        try:
            # a matched message cannot be taken by another thread before the Recv below
            matched = self.comm.Mprobe(source=mpi_source, tag=MPI.ANY_TAG, status=status)
            buf = bytearray(status.Get_count(MPI.BYTE))
            matched.Recv([buf, MPI.BYTE])
        except MPI.Exception as exc:
            raise TransportError(
                f"MPI receive failed: {exc.Get_error_string()}",
                operation="recv",
                peer=None if source == ANY_SOURCE else source,
                original_error=exc,
            ) from exc
        return Message(status.Get_source(), status.Get_tag(), bytes(buf))

    def abort(self, code: int = 1) -> None:
        logger.error(f"Rank {self.rank} calling MPI_Abort with code {code}")
        self.comm.Abort(code)
