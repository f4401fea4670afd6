"""
Payload opening — plain files or zstandard (zstd) frames.

open_payload(path, zstd) → context manager yielding a binary reader

With *zstd* set the reader yields the decompressed stream, so a
``layer.tar.zst`` can be digested or verified over its tar content without
ever holding the whole archive in memory.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generator

import zstandard as zstd

_MAX_WINDOW_SIZE: int = 1 << 27        # 128 MiB window (safe for large files)

# Shared decompressor; stream_reader() makes an independent context per call.
_decompressor: zstd.ZstdDecompressor = zstd.ZstdDecompressor(max_window_size=_MAX_WINDOW_SIZE)


def is_zstd_path(path: Path | str) -> bool:
    return Path(path).suffix in (".zst", ".zstd")


@contextmanager
def open_payload(path: Path | str, zstd_frames: bool = False) -> Generator[BinaryIO, None, None]:
    """Open *path* for reading, decompressing zstd frames when asked."""
    with open(path, "rb") as fh:
        if not zstd_frames:
            yield fh
            return
        with _decompressor.stream_reader(fh, read_across_frames=True, closefd=False) as reader:
            yield reader  # type: ignore[misc]
