"""Wire protocol shared by the coordinator, sink and worker roles.

Every role imports its tags, role ids and size limits from here so that all
participants agree on one version of the protocol.
"""

from typing import List

PROTOCOL_VERSION = 1

# Message tags
READY = 0
BEGIN = 1
DATA = 2
END = 3
DONE = 99

TAG_NAMES = {
    READY: "READY",
    BEGIN: "BEGIN",
    DATA: "DATA",
    END: "END",
    DONE: "DONE",
}

# Role ids
COORDINATOR = 0
SINK = 1
FIRST_WORKER = 2

# Smallest world that has at least one worker
MIN_WORLD_SIZE = FIRST_WORKER + 1

# Size limits (bytes)
DEFAULT_FRAGMENT_SIZE = 20000
DEFAULT_BLOCK_SIZE = 20000
DEFAULT_READ_SIZE = 20000
DEFAULT_MAX_LINE_LENGTH = 16384

HEADER_SENTINEL = b">"


def tag_name(tag: int) -> str:
    """Return a printable name for a message tag."""
    return TAG_NAMES.get(tag, f"TAG{tag}")


def role_name(rank: int) -> str:
    """Return a printable name for a role id."""
    if rank == COORDINATOR:
        return "coordinator"
    if rank == SINK:
        return "sink"
    return f"worker-{rank}"


def is_worker(rank: int) -> bool:
    return rank >= FIRST_WORKER


def worker_ranks(size: int) -> List[int]:
    """Role ids of every worker in a world of ``size`` roles."""
    return list(range(FIRST_WORKER, size))
