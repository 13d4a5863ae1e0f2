"""In-process transport for roles running as threads.

Each role owns a mailbox. A receive for a specific sender takes that sender's
oldest message and leaves everything else queued, which gives the same
per-sender FIFO and selective receive semantics as MPI.

A mailbox holds at most ``capacity`` undelivered messages from each sender.
A send to a full mailbox blocks until the receiver takes one, so a worker
whose output the sink is not reading yet is throttled as it would be by MPI.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import List, Optional

from mpiblast.exceptions import TransportAborted, TransportError
from mpiblast.transport.base import ANY_SOURCE, Message, Transport

logger = logging.getLogger(__name__)

# Undelivered messages allowed per (sender, receiver) pair
DEFAULT_CAPACITY = 64


class _Mailbox:
    def __init__(self) -> None:
        self.messages: List[Message] = []
        self.queued: Counter = Counter()
        self.ready = threading.Condition()


class LocalHub:
    """Owns the mailboxes of a ``size``-role world."""

    def __init__(self, size: int, capacity: int = DEFAULT_CAPACITY):
        if size <= 0:
            raise ValueError("size must be positive")
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.size = size
        self.capacity = capacity
        self._mailboxes = [_Mailbox() for _ in range(size)]
        self._abort_code: Optional[int] = None

    @property
    def aborted(self) -> bool:
        return self._abort_code is not None

    def endpoint(self, rank: int) -> "LocalTransport":
        self._check_rank(rank, "endpoint")
        return LocalTransport(self, rank)

    def pending(self, rank: int) -> int:
        """Number of undelivered messages waiting for ``rank``."""
        box = self._mailboxes[rank]
        with box.ready:
            return len(box.messages)

    def _check_rank(self, rank: int, operation: str) -> None:
        if not 0 <= rank < self.size:
            raise TransportError(f"Invalid role id {rank}", operation=operation, peer=rank)

    def post(self, dest: int, message: Message) -> None:
        """Queue ``message`` for ``dest``, waiting while the sender's share is full."""
        self._check_rank(dest, "send")
        box = self._mailboxes[dest]
        with box.ready:
            while True:
                if self._abort_code is not None:
                    raise TransportAborted("Job aborted", code=self._abort_code)
                if box.queued[message.source] < self.capacity:
                    break
                box.ready.wait()
            box.messages.append(message)
            box.queued[message.source] += 1
            box.ready.notify_all()

    def take(self, rank: int, source: int) -> Message:
        if source != ANY_SOURCE:
            self._check_rank(source, "recv")
        box = self._mailboxes[rank]
        with box.ready:
            while True:
                if self._abort_code is not None:
                    raise TransportAborted("Job aborted while waiting for a message", code=self._abort_code)
                for index, message in enumerate(box.messages):
                    if source == ANY_SOURCE or message.source == source:
                        box.queued[message.source] -= 1
                        # wake a sender waiting for room
                        box.ready.notify_all()
                        return box.messages.pop(index)
                box.ready.wait()

    def abort(self, code: int = 1) -> None:
        if self._abort_code is None:
            self._abort_code = code
        for box in self._mailboxes:
            with box.ready:
                box.ready.notify_all()


class LocalTransport(Transport):
    """One role's view of a :class:`LocalHub`."""

    def __init__(self, hub: LocalHub, rank: int):
        self.hub = hub
        self.rank = rank
        self.size = hub.size

    def send(self, dest: int, tag: int, payload: bytes = b"") -> None:
        self.hub.post(dest, Message(self.rank, tag, bytes(payload)))

    def recv(self, source: int = ANY_SOURCE) -> Message:
        return self.hub.take(self.rank, source)

    def abort(self, code: int = 1) -> None:
        logger.error(f"Role {self.rank} aborting local job with code {code}")
        self.hub.abort(code)
