"""Split a query file into record-aligned blocks of work.

A record is a header line (starting with the sentinel byte, ``>`` for FASTA)
followed by its payload lines. Blocks hold whole records only and stay within
the block limit, except that a single record larger than the limit is sent on
its own rather than split.

The chunker works on a seekable binary source and keeps a byte cursor, so a
record that does not fit is pushed back and becomes the start of the next
block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from mpiblast import protocol
from mpiblast.exceptions import MalformedInputError

logger = logging.getLogger(__name__)

# Read size used while skipping the tail of a truncated header
_DISCARD_CHUNK = 65536


@dataclass(frozen=True)
class Block:
    """One unit of work: whole records plus their line terminators."""

    data: bytes
    records: int
    start: int
    end: int

    def __len__(self) -> int:
        return len(self.data)


def _source_name(source: BinaryIO) -> Optional[str]:
    name = getattr(source, "name", None)
    return name if isinstance(name, str) else None


def read_line(
    source: BinaryIO,
    max_line_length: int = protocol.DEFAULT_MAX_LINE_LENGTH,
    sentinel: bytes = protocol.HEADER_SENTINEL,
) -> Optional[bytes]:
    """Read one line of at most ``max_line_length`` bytes, without its terminator.

    A header line longer than the limit is truncated and the rest of it is
    thrown away. Any other long line is returned in pieces: the first
    ``max_line_length`` bytes now, the remainder on the next call.

    Returns:
        The line content, or None at end of source

    Raises:
        MalformedInputError: If the source ends without a final line break
    """
    start = source.tell()
    raw = source.readline(max_line_length + 1)
    if not raw:
        return None
    if raw.endswith(b"\n"):
        return raw[:-1]

    if len(raw) <= max_line_length:
        raise MalformedInputError(
            "incomplete last line in query file", source=_source_name(source), offset=start
        )

    content = raw[:max_line_length]
    if content.startswith(sentinel):
        logger.warning(
            f"Header at offset {start} is longer than {max_line_length} bytes; truncating it"
        )
        while True:
            rest = source.readline(_DISCARD_CHUNK)
            if not rest:
                raise MalformedInputError(
                    "header incomplete at end of query file",
                    source=_source_name(source),
                    offset=start,
                )
            if rest.endswith(b"\n"):
                break
    else:
        source.seek(start + max_line_length)
    return content


class Chunker:
    """Stateful block reader over one query source.

    Args:
        source: Seekable binary file holding the queries
        limit: Block size limit in bytes
        max_line_length: Longest line handed back by :func:`read_line`
        sentinel: Byte that marks a header line
        cursor: Offset to start from (defaults to the current position)
    """

    def __init__(
        self,
        source: BinaryIO,
        limit: int = protocol.DEFAULT_BLOCK_SIZE,
        max_line_length: int = protocol.DEFAULT_MAX_LINE_LENGTH,
        sentinel: bytes = protocol.HEADER_SENTINEL,
        cursor: Optional[int] = None,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.source = source
        self.limit = limit
        self.max_line_length = max_line_length
        self.sentinel = sentinel
        self.cursor = source.tell() if cursor is None else cursor
        self.blocks_read = 0
        self.records_read = 0

    def next_block(self) -> Optional[Block]:
        """Return the next block, or None once the source is exhausted."""
        source = self.source
        source.seek(self.cursor)
        start = self.cursor

        buf = bytearray()
        oversized = False
        records = 0
        record_buf_offset = 0
        record_src_offset = start

        while True:
            offset = source.tell()
            line = read_line(source, self.max_line_length, self.sentinel)
            if line is None:
                break

            is_header = line.startswith(self.sentinel)
            if len(buf) + len(line) + 1 > self.limit:
                if is_header and records >= 1:
                    # next record starts in the next block
                    source.seek(offset)
                    break
                if not is_header and records > 1:
                    # drop the partial record and re-read it next time
                    del buf[record_buf_offset:]
                    source.seek(record_src_offset)
                    records -= 1
                    break
                if not oversized:
                    oversized = True
                    logger.debug(
                        f"Record at offset {record_src_offset} exceeds the {self.limit}-byte block limit; "
                        "sending it as a block of its own"
                    )

            if is_header:
                records += 1
                record_src_offset = offset
                record_buf_offset = len(buf)

            buf += line
            buf += b"\n"

        self.cursor = source.tell()
        if records == 0:
            return None

        self.blocks_read += 1
        self.records_read += records
        return Block(bytes(buf), records, start, self.cursor)

    def __iter__(self) -> Iterator[Block]:
        while True:
            block = self.next_block()
            if block is None:
                return
            yield block


def next_block(
    source: BinaryIO,
    cursor: int,
    limit: int = protocol.DEFAULT_BLOCK_SIZE,
    max_line_length: int = protocol.DEFAULT_MAX_LINE_LENGTH,
    sentinel: bytes = protocol.HEADER_SENTINEL,
) -> Optional[Block]:
    """Read one block starting at ``cursor``; ``Block.end`` is the next cursor."""
    return Chunker(source, limit, max_line_length, sentinel, cursor=cursor).next_block()


def iter_blocks(
    source: BinaryIO,
    limit: int = protocol.DEFAULT_BLOCK_SIZE,
    max_line_length: int = protocol.DEFAULT_MAX_LINE_LENGTH,
    sentinel: bytes = protocol.HEADER_SENTINEL,
) -> Iterator[Block]:
    return iter(Chunker(source, limit, max_line_length, sentinel))
