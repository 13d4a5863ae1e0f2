"""Single writer that consolidates worker output into one file.

A worker's output for one block arrives as a session: BEGIN, any number of
DATA frames, END. Once a session is open the sink only listens to that worker
until its END, so sessions are never interleaved in the file. Messages from
other workers wait in the transport meanwhile.

The coordinator's DONE says how many blocks were handed out. A worker's
session can still be on its way when DONE arrives, so the sink keeps writing
until it has that many sessions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

from mpiblast import protocol
from mpiblast.exceptions import ProtocolError, StorageError
from mpiblast.logging_config import get_logger, log_performance
from mpiblast.transport import ANY_SOURCE, Message, Transport


@dataclass
class SinkStats:
    sessions: int = 0
    frames: int = 0
    bytes_written: int = 0


class Sink:
    """Owns the output file for the whole run."""

    def __init__(self, transport: Transport, output_path: Union[str, Path]):
        self.transport = transport
        self.output_path = Path(output_path)
        self.stats = SinkStats()
        self.logger = get_logger(__name__, extra={'role': 'sink', 'rank': transport.rank})

    def _open(self) -> BinaryIO:
        try:
            return open(self.output_path, "wb")
        except OSError as exc:
            raise StorageError(
                f"Cannot open output file: {exc}",
                operation="open",
                file_path=str(self.output_path),
                original_error=exc,
            ) from exc

    def _write(self, out: BinaryIO, payload: bytes) -> None:
        try:
            out.write(payload)
        except OSError as exc:
            raise StorageError(
                f"Cannot write output file: {exc}",
                operation="write",
                file_path=str(self.output_path),
                original_error=exc,
            ) from exc
        self.stats.frames += 1
        self.stats.bytes_written += len(payload)

    def _drain_session(self, out: BinaryIO, worker: int) -> None:
        """Copy one worker's DATA frames to the file until its END."""
        while True:
            message = self.transport.recv(worker)
            if message.tag == protocol.END:
                return
            if message.tag == protocol.DATA:
                self._write(out, message.payload)
            else:
                self.logger.debug(
                    f"Discarding {protocol.tag_name(message.tag)} from worker {worker} inside a session"
                )

    def _expected_sessions(self, message: Message) -> int:
        """Session count announced by the coordinator's DONE."""
        if message.tag != protocol.DONE:
            self.logger.warning(
                f"Unexpected {protocol.tag_name(message.tag)} from coordinator; treating it as DONE"
            )
        if not message.payload:
            return self.stats.sessions
        try:
            return int(message.payload.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise ProtocolError(
                f"DONE from coordinator carries {message.payload!r} instead of a block count",
                role="sink",
                peer=message.source,
                tag=message.tag,
            )

    def run(self) -> SinkStats:
        """Write sessions until the coordinator signals completion.

        DONE from the coordinator carries the number of blocks handed out.
        Messages from different senders are not ordered against each other,
        so sessions still in flight when DONE arrives are written before the
        file is closed.
        """
        started = time.time()
        out = self._open()
        self.logger.info(f"Writing search output to {self.output_path}")
        expected: Optional[int] = None
        try:
            while expected is None or self.stats.sessions < expected:
                message = self.transport.recv(ANY_SOURCE)

                if message.source == protocol.COORDINATOR:
                    expected = self._expected_sessions(message)
                    if self.stats.sessions < expected:
                        self.logger.debug(
                            f"Coordinator finished; waiting for {expected - self.stats.sessions} more session(s)"
                        )
                    continue

                if message.tag != protocol.BEGIN:
                    raise ProtocolError(
                        f"Session from {protocol.role_name(message.source)} opened with "
                        f"{protocol.tag_name(message.tag)} instead of BEGIN",
                        role="sink",
                        peer=message.source,
                        tag=message.tag,
                    )

                self._drain_session(out, message.source)
                self.stats.sessions += 1
        finally:
            out.close()

        log_performance(
            self.logger,
            "consolidation",
            time.time() - started,
            sessions=self.stats.sessions,
            bytes_written=self.stats.bytes_written,
        )
        return self.stats
