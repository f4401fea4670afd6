"""
TarSum — content checksum of a tar archive, independent of its byte layout.

Every entry is hashed over a selection of its header fields followed by its
content. The per-entry sums are sorted and hashed again, so two archives
with the same entries in a different order (or with different padding and
header encodings) share one checksum.

    ts = TarSum(fileobj, Version.V1)
    while ts.read(TARSUM_BLOCK):
        pass
    ts.sum()  → "tarsum.v1+sha256:<hex>"

Digest string layout:
  tarsum[.<version>]+<hash>:<hex>

Versions:
  tarsum      (V0)   all header fields, mtime included
  tarsum.v1   (V1)   mtime dropped, extended attributes appended
  tarsum.dev  (DEV)  same selection as V1; reserved for format experiments

TarSum is pull-based: it only advances when read() is called, pulling from
*fileobj* as needed. read() returns the archive bytes consumed so far,
unchanged.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
import re
import tarfile
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator

log = logging.getLogger("streamdigest.tarsum")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARSUM_BLOCK: int = 32 * 1024       # content read size per entry
DEFAULT_HASH: str = "sha256"
XATTR_PREFIX: str = "SCHILY.xattr."

_TARSUM_RE = re.compile(r"tarsum(?:\.([a-z0-9]+))?\+([a-zA-Z0-9]+):([A-Fa-f0-9]+)")


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------

class Version(Enum):
    V0  = "tarsum"
    V1  = "tarsum.v1"
    DEV = "tarsum.dev"

    def __str__(self) -> str:
        return self.value


DEFAULT_VERSION: Version = Version.V1


class InvalidTarSum(ValueError):
    """String does not look like a tarsum digest."""


class NotTarSumVersion(ValueError):
    """Tarsum prefix names no known version."""


def version_from_tarsum(tarsum: str) -> Version:
    """Return the Version named by the prefix of *tarsum* (before '+')."""
    prefix = tarsum.split("+", 1)[0]
    try:
        return Version(prefix)
    except ValueError:
        raise NotTarSumVersion(f"Unknown tarsum version: {prefix!r}") from None


@dataclass(frozen=True)
class TarSumInfo:
    version: str       # "" for the unversioned (V0) form
    algorithm: str     # inner hash, e.g. "sha256"
    hex: str


def parse_tarsum(tarsum: str) -> TarSumInfo:
    m = _TARSUM_RE.fullmatch(tarsum)
    if m is None:
        raise InvalidTarSum(f"Invalid tarsum: {tarsum!r}")
    return TarSumInfo(version=m.group(1) or "", algorithm=m.group(2), hex=m.group(3))


# ---------------------------------------------------------------------------
# Header selection
# ---------------------------------------------------------------------------

HeaderSelector = Callable[[tarfile.TarInfo], list[tuple[str, str]]]


def _header_name(ti: tarfile.TarInfo) -> str:
    # tarfile strips the trailing slash that directory headers carry on disk.
    if ti.isdir() and not ti.name.endswith("/"):
        return ti.name + "/"
    return ti.name


def _v0_headers(ti: tarfile.TarInfo) -> list[tuple[str, str]]:
    return [
        ("name",     _header_name(ti)),
        ("mode",     str(ti.mode)),
        ("uid",      str(ti.uid)),
        ("gid",      str(ti.gid)),
        ("size",     str(ti.size)),
        ("mtime",    str(int(ti.mtime))),
        ("typeflag", ti.type.decode("latin-1")),
        ("linkname", ti.linkname),
        ("uname",    ti.uname),
        ("gname",    ti.gname),
        ("devmajor", str(ti.devmajor)),
        ("devminor", str(ti.devminor)),
    ]


def _v1_headers(ti: tarfile.TarInfo) -> list[tuple[str, str]]:
    headers = [h for h in _v0_headers(ti) if h[0] != "mtime"]
    xattrs = sorted(
        (key[len(XATTR_PREFIX):], value)
        for key, value in ti.pax_headers.items()
        if key.startswith(XATTR_PREFIX)
    )
    return headers + xattrs


HEADER_SELECTORS: dict[Version, HeaderSelector] = {
    Version.V0:  _v0_headers,
    Version.V1:  _v1_headers,
    Version.DEV: _v1_headers,
}


# ---------------------------------------------------------------------------
# Per-entry sums
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileInfoSum:
    name: str      # cleaned entry path
    sum: str       # hex digest of header selection + content
    pos: int       # 0-based position in the archive


class _Recorder:
    """Readable wrapper remembering every byte pulled from *source*."""

    def __init__(self, source: BinaryIO) -> None:
        self._source = source
        self._seen = bytearray()
        self.total = 0

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        self._seen += data
        self.total += len(data)
        return data

    def take(self) -> bytes:
        out = bytes(self._seen)
        self._seen.clear()
        return out


# ---------------------------------------------------------------------------
# TarSum
# ---------------------------------------------------------------------------

class TarSum:
    """Pull-based tarsum over an uncompressed tar stream read from *source*."""

    def __init__(
        self,
        source: BinaryIO,
        version: Version = DEFAULT_VERSION,
        hash_name: str = DEFAULT_HASH,
    ) -> None:
        hashlib.new(hash_name)          # fail early on unknown hashes
        self.version = version
        self.hash_name = hash_name
        self._select = HEADER_SELECTORS[version]
        self._source = _Recorder(source)
        self._sums: list[FileInfoSum] = []
        self._out = bytearray()
        self._steps: Iterator[bytes] = self._walk()
        self._finished = False

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def read(self, size: int = -1) -> bytes:
        """Advance the checksum; return consumed archive bytes, b"" when done."""
        while not self._out and not self._finished:
            try:
                self._out += next(self._steps)
            except StopIteration:
                self._finished = True

        n = len(self._out) if size is None or size < 0 else size
        out = bytes(self._out[:n])
        del self._out[:n]
        return out

    @property
    def finished(self) -> bool:
        return self._finished and not self._out

    def sums(self) -> list[FileInfoSum]:
        return list(self._sums)

    def sum(self, extra: bytes | None = None) -> str:
        """Return "<version>+<hash>:<hex>" over the entries seen so far."""
        h = hashlib.new(self.hash_name)
        if extra:
            h.update(extra)
        for fis in sorted(self._sums, key=lambda s: (s.sum, s.pos)):
            h.update(fis.sum.encode())
        return f"{self.version}+{self.hash_name}:{h.hexdigest()}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _walk(self) -> Iterator[bytes]:
        try:
            archive = tarfile.open(fileobj=self._source, mode="r|")
        except tarfile.ReadError:
            if self._source.total == 0:
                log.debug("Empty source, no entries")
                return
            raise

        with archive:
            for pos, member in enumerate(archive):
                h = hashlib.new(self.hash_name)
                for key, value in self._select(member):
                    h.update((key + value).encode("utf-8", "surrogateescape"))
                yield self._source.take()

                if member.isreg():
                    fh = archive.extractfile(member)
                    assert fh is not None
                    while True:
                        block = fh.read(TARSUM_BLOCK)
                        if not block:
                            break
                        h.update(block)
                        yield self._source.take()

                fis = FileInfoSum(
                    name=posixpath.normpath(member.name),
                    sum=h.hexdigest(),
                    pos=pos,
                )
                self._sums.append(fis)
                log.debug("Entry %d %s → %s", pos, fis.name, fis.sum)

        # Trailing padding after the end-of-archive marker.
        while self._source.read(TARSUM_BLOCK):
            yield self._source.take()
        yield self._source.take()
