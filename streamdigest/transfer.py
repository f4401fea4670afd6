"""
Chunked streaming readers.

iter_chunks(fh, chunk_size) → Iterator[bytes]
    Reads an open binary stream in chunks of at most *chunk_size* bytes
    until EOF. Nothing is yielded for an empty stream.
"""

from __future__ import annotations

from typing import BinaryIO, Iterator

CHUNK_SIZE: int = 512 * 1024   # 512 KiB


def iter_chunks(fh: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    while True:
        block = fh.read(chunk_size)
        if not block:
            break
        yield block
