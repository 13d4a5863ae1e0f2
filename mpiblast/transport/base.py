"""Abstract message transport used by every role."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from mpiblast import protocol
from mpiblast.exceptions import TransportAborted, TransportError

ANY_SOURCE = -1

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """One delivered message: who sent it, its tag and its bytes."""

    source: int
    tag: int
    payload: bytes = b""

    def __repr__(self) -> str:
        return (
            f"Message(source={self.source}, tag={protocol.tag_name(self.tag)}, "
            f"bytes={len(self.payload)})"
        )


class Transport(ABC):
    """Point-to-point tagged channel set addressed by role id.

    Messages from one sender to one receiver arrive in the order they were
    sent. Nothing is guaranteed about ordering across senders.
    """

    rank: int
    size: int

    @abstractmethod
    def send(self, dest: int, tag: int, payload: bytes = b"") -> None:
        """Deliver ``payload`` to role ``dest``; may block on backpressure.

        Raises:
            TransportError: If the message cannot be sent
        """

    @abstractmethod
    def recv(self, source: int = ANY_SOURCE) -> Message:
        """Block until a message from ``source`` (or anyone) arrives.

        Raises:
            TransportError: If receiving fails
            TransportAborted: If the job was aborted while waiting
        """

    @abstractmethod
    def abort(self, code: int = 1) -> None:
        """Tear down every role of the job."""

    @property
    def worker_count(self) -> int:
        return len(protocol.worker_ranks(self.size))


def guarded_send(
    transport: Transport,
    dest: int,
    tag: int,
    payload: bytes = b"",
    strict: bool = True,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> bool:
    """Send a message, applying the configured transport-error policy.

    With ``strict`` the TransportError propagates. Otherwise it is logged and
    the caller carries on as if the message had been delivered.

    Returns:
        True if the send succeeded
    """
    try:
        transport.send(dest, tag, payload)
        return True
    except TransportAborted:
        raise
    except TransportError as exc:
        if strict:
            raise
        (logger or _logger).error(
            f"Ignoring failed send of {protocol.tag_name(tag)} to {protocol.role_name(dest)}: {exc}"
        )
        return False
