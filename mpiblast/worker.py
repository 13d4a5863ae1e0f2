"""Worker relay: runs the search tool once per block.

For each block the relay starts a fresh tool process with piped stdin and
stdout. A feeder thread copies the block from the coordinator into stdin while
the main thread copies stdout to the sink. Both directions must run at the
same time: a tool that writes results while it is still reading queries fills
its stdout pipe, and it stops reading stdin until someone drains it.

The feeder owns the stdin write end and the main thread owns the stdout read
end, so neither needs a lock.
"""

from __future__ import annotations

import subprocess
import threading
import time
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Sequence, cast

from mpiblast import protocol
from mpiblast.exceptions import ProtocolError, SubprocessLaunchError
from mpiblast.logging_config import get_logger, log_performance
from mpiblast.transport import Transport, guarded_send


@dataclass
class RelayStats:
    blocks: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    failed_exits: int = 0


class Feeder(threading.Thread):
    """Copies one block's DATA frames from the coordinator into the tool's stdin.

    Closing stdin on END is what tells the tool its input is complete. If the
    tool stops reading early the remaining frames are still consumed, so the
    next reply from the coordinator is read in step.

    Whatever ends the thread early is kept in ``error`` for the relay to raise
    after ``join()``.
    """

    def __init__(self, transport: Transport, stdin: BinaryIO, logger):
        super().__init__(name=f"feeder-{transport.rank}", daemon=True)
        self.transport = transport
        self.stdin = stdin
        self.logger = logger
        self.bytes_fed = 0
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self._feed()
        except BaseException as exc:  # noqa: BLE001
            self.error = exc
        finally:
            self._close_stdin()

    def _feed(self) -> None:
        broken = False
        while True:
            message = self.transport.recv(protocol.COORDINATOR)
            if message.tag == protocol.END:
                return
            if message.tag != protocol.DATA:
                self.logger.debug(f"Feeder ignoring {protocol.tag_name(message.tag)} from coordinator")
                continue
            if broken:
                continue
            try:
                self._write_all(message.payload)
            except BrokenPipeError:
                broken = True
                self.logger.warning(
                    "Search tool closed its input early; discarding the rest of the block"
                )

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self.stdin.write(view)
            self.bytes_fed += written
            view = view[written:]

    def _close_stdin(self) -> None:
        try:
            self.stdin.close()
        except BrokenPipeError:
            pass


class WorkerRelay:
    """Requests blocks until the coordinator says DONE.

    Args:
        transport: This worker's transport endpoint
        command: Search tool argument vector, executable first
        read_size: Largest chunk read from the tool's stdout per DATA frame
        strict_transport: Raise on failed sends instead of logging them
        env: Environment for the tool (defaults to ours)
        cwd: Working directory for the tool
    """

    def __init__(
        self,
        transport: Transport,
        command: Sequence[str],
        read_size: int = protocol.DEFAULT_READ_SIZE,
        strict_transport: bool = True,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        if not command:
            raise ValueError("command must name the search tool")
        self.transport = transport
        self.rank = transport.rank
        self.command: List[str] = [str(arg) for arg in command]
        self.read_size = read_size
        self.strict_transport = strict_transport
        self.env = env
        self.cwd = cwd
        self.stats = RelayStats()
        self.logger = get_logger(__name__, extra={'role': 'worker', 'rank': self.rank})

    def _send(self, dest: int, tag: int, payload: bytes = b"") -> None:
        guarded_send(self.transport, dest, tag, payload, strict=self.strict_transport, logger=self.logger)

    def _spawn(self) -> "subprocess.Popen[bytes]":
        try:
            return subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                bufsize=0,
                env=self.env,
                cwd=self.cwd,
            )
        except OSError as exc:
            raise SubprocessLaunchError(
                f"Failure in invoking search tool: {exc}",
                command=self.command[0],
                original_error=exc,
            ) from exc

    def _relay_output(self, stdout: BinaryIO) -> None:
        self._send(protocol.SINK, protocol.BEGIN)
        while True:
            chunk = stdout.read(self.read_size)
            if not chunk:
                break
            self._send(protocol.SINK, protocol.DATA, chunk)
            self.stats.bytes_out += len(chunk)
        self._send(protocol.SINK, protocol.END)

    def search_block(self) -> int:
        """Run the tool over the block the coordinator is sending now.

        Returns:
            The tool's exit status
        """
        process = self._spawn()
        stdin = cast(BinaryIO, process.stdin)
        stdout = cast(BinaryIO, process.stdout)
        self.logger.debug(f"Started search tool pid {process.pid} for block {self.stats.blocks + 1}")

        feeder = Feeder(self.transport, stdin, self.logger)
        feeder.start()
        try:
            self._relay_output(stdout)
        except BaseException:
            # the feeder is a daemon thread; it may still be waiting on the coordinator
            process.kill()
            process.wait()
            stdout.close()
            raise

        returncode = process.wait()
        feeder.join()
        stdout.close()

        if feeder.error is not None:
            raise feeder.error

        self.stats.blocks += 1
        self.stats.bytes_in += feeder.bytes_fed
        if returncode != 0:
            self.stats.failed_exits += 1
            self.logger.warning(f"Search tool exited with status {returncode} on block {self.stats.blocks}")
        return returncode

    def run(self) -> RelayStats:
        started = time.time()
        self._send(protocol.COORDINATOR, protocol.READY)

        while True:
            reply = self.transport.recv(protocol.COORDINATOR)
            if reply.tag == protocol.DONE:
                break
            if reply.tag != protocol.BEGIN:
                raise ProtocolError(
                    f"Expected BEGIN or DONE from coordinator, got {protocol.tag_name(reply.tag)}",
                    role=protocol.role_name(self.rank),
                    peer=reply.source,
                    tag=reply.tag,
                )
            self.search_block()
            self._send(protocol.COORDINATOR, protocol.READY)

        log_performance(
            self.logger,
            "search",
            time.time() - started,
            blocks=self.stats.blocks,
            bytes_in=self.stats.bytes_in,
            bytes_out=self.stats.bytes_out,
        )
        return self.stats

