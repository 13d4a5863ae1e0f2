"""Pull-based distribution of query blocks to workers.

Workers ask for work with a READY message. Whoever asks first gets the next
block; once the query file is exhausted each asking worker gets DONE. When
every worker has been told DONE the sink is told how many blocks went out,
which is how many output sessions it must write before closing the file.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from mpiblast import protocol
from mpiblast.chunker import Block, Chunker
from mpiblast.exceptions import ProtocolError
from mpiblast.logging_config import get_logger, log_performance
from mpiblast.transport import ANY_SOURCE, Transport, guarded_send


@dataclass
class DistributionStats:
    blocks: int = 0
    records: int = 0
    bytes_sent: int = 0
    fragments: int = 0
    workers_finished: int = 0


def fragments(data: bytes, fragment_size: int):
    """Yield consecutive slices of ``data`` no longer than ``fragment_size``."""
    view = memoryview(data)
    for offset in range(0, len(data), fragment_size):
        yield view[offset:offset + fragment_size].tobytes()


class Coordinator:
    """Hands out blocks from one chunker to ``worker_count`` workers."""

    def __init__(
        self,
        transport: Transport,
        chunker: Chunker,
        worker_count: Optional[int] = None,
        fragment_size: int = protocol.DEFAULT_FRAGMENT_SIZE,
        strict_transport: bool = True,
    ):
        self.transport = transport
        self.chunker = chunker
        self.worker_count = transport.worker_count if worker_count is None else worker_count
        self.fragment_size = fragment_size
        self.strict_transport = strict_transport
        self.stats = DistributionStats()
        self.logger = get_logger(__name__, extra={'role': 'coordinator', 'rank': transport.rank})

    def _send(self, dest: int, tag: int, payload: bytes = b"") -> None:
        guarded_send(self.transport, dest, tag, payload, strict=self.strict_transport, logger=self.logger)

    def _send_block(self, worker: int, block: Block) -> None:
        self._send(worker, protocol.BEGIN)
        for fragment in fragments(block.data, self.fragment_size):
            self._send(worker, protocol.DATA, fragment)
            self.stats.fragments += 1
        self._send(worker, protocol.END)

        self.stats.blocks += 1
        self.stats.records += block.records
        self.stats.bytes_sent += len(block)

    def run(self) -> DistributionStats:
        """Serve ready requests until every worker has been sent DONE."""
        started = time.time()
        pending = self.worker_count
        self.logger.info(f"Distributing blocks of up to {self.chunker.limit} bytes to {pending} worker(s)")

        while pending > 0:
            request = self.transport.recv(ANY_SOURCE)
            if request.tag != protocol.READY or not protocol.is_worker(request.source):
                raise ProtocolError(
                    f"Expected a ready request, got {protocol.tag_name(request.tag)} "
                    f"from {protocol.role_name(request.source)}",
                    role="coordinator",
                    peer=request.source,
                    tag=request.tag,
                )

            block = self.chunker.next_block()
            if block is None:
                self.logger.debug(f"No blocks left; sending DONE to worker {request.source}")
                self._send(request.source, protocol.DONE)
                pending -= 1
                self.stats.workers_finished += 1
                continue

            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(
                    f"Sending block {self.stats.blocks + 1} ({block.records} records, "
                    f"{len(block)} bytes, offsets {block.start}-{block.end}) to worker {request.source}"
                )
            self._send_block(request.source, block)

        # payload is the block count; the sink writes that many sessions before closing
        self._send(protocol.SINK, protocol.DONE, str(self.stats.blocks).encode("ascii"))

        log_performance(
            self.logger,
            "distribution",
            time.time() - started,
            blocks=self.stats.blocks,
            records=self.stats.records,
            bytes_sent=self.stats.bytes_sent,
        )
        return self.stats
