"""
Content digests — "<algorithm>:<hex>".

    Digest.parse("sha256:9f86d0…")          → validated Digest
    Digest.from_string("tarsum.v1+sha256:…") → unvalidated split
    from_reader(fh) / from_bytes(data)      → sha256 (or any direct hash)
    from_tar_archive(fh)                    → tarsum.v1+sha256

Direct hashes: md5, sha1, sha256 (hashlib) and blake3.
Anything else must be a tarsum digest (see tarsum.py).
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import BinaryIO, Protocol

import blake3 as _b3

from .tarsum import (
    DEFAULT_VERSION,
    TARSUM_BLOCK,
    InvalidTarSum,
    NotTarSumVersion,
    TarSum,
    Version,
    parse_tarsum,
    version_from_tarsum,
)
from .transfer import CHUNK_SIZE, iter_chunks

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CANONICAL: str = "sha256"

_HASHES = {
    "md5":    hashlib.md5,
    "sha1":   hashlib.sha1,
    "sha256": hashlib.sha256,
    "blake3": _b3.blake3,
}
HASH_ALGORITHMS: tuple[str, ...] = tuple(_HASHES)

_DIGEST_RE = re.compile(r"[a-zA-Z0-9\-_+.]+:[a-zA-Z0-9\-_+.=]+")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DigestError(ValueError):
    """Base class for digest parsing and validation errors."""


class InvalidDigestFormat(DigestError):
    """Not of the form <algorithm>:<hex>."""


class UnsupportedDigest(DigestError):
    """Well formed, but the algorithm is not one we can compute."""


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

class Hasher(Protocol):
    def update(self, data: bytes) -> None: ...
    def hexdigest(self) -> str: ...


def new_hash(name: str) -> Hasher:
    """Return a fresh hash object for a direct algorithm *name*."""
    try:
        return _HASHES[name]()
    except KeyError:
        raise UnsupportedDigest(f"Unsupported hash algorithm: {name!r}") from None


# ---------------------------------------------------------------------------
# Digest
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Digest:
    algorithm: str   # "sha256", "tarsum.v1+sha256", …
    hex: str

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"

    @classmethod
    def from_string(cls, s: str) -> Digest:
        """Split *s* at its first ':' without further checks."""
        alg, sep, hex_ = s.partition(":")
        if not sep:
            raise InvalidDigestFormat(f"Missing ':' in digest {s!r}")
        return cls(alg, hex_)

    @classmethod
    def parse(cls, s: str) -> Digest:
        """Split and validate *s*. Raises a DigestError subclass."""
        d = cls.from_string(s)
        d.validate()
        return d

    def validate(self) -> None:
        s = str(self)

        # Common case will be tarsum.
        try:
            info = parse_tarsum(s)
        except InvalidTarSum:
            info = None
        if info is not None:
            try:
                version_from_tarsum(s)
            except NotTarSumVersion as err:
                raise UnsupportedDigest(str(err)) from None
            if info.algorithm not in hashlib.algorithms_available:
                raise UnsupportedDigest(f"Unsupported tarsum hash: {info.algorithm!r}")
            return

        if not _DIGEST_RE.fullmatch(s) or not self.hex:
            raise InvalidDigestFormat(f"Invalid digest format: {s!r}")
        if self.algorithm not in _HASHES:
            raise UnsupportedDigest(f"Unsupported digest algorithm: {self.algorithm!r}")


def new_digest(algorithm: str, hasher: Hasher) -> Digest:
    return Digest(algorithm, hasher.hexdigest())


def from_reader(fh: BinaryIO, algorithm: str = CANONICAL, chunk_size: int = CHUNK_SIZE) -> Digest:
    """Digest everything readable from *fh*."""
    h = new_hash(algorithm)
    for chunk in iter_chunks(fh, chunk_size):
        h.update(chunk)
    return new_digest(algorithm, h)


def from_bytes(data: bytes, algorithm: str = CANONICAL) -> Digest:
    h = new_hash(algorithm)
    h.update(data)
    return new_digest(algorithm, h)


def from_tar_archive(fh: BinaryIO, version: Version = DEFAULT_VERSION) -> Digest:
    """Tarsum of the uncompressed tar stream in *fh*."""
    ts = TarSum(fh, version)
    while ts.read(TARSUM_BLOCK):
        pass
    return Digest.parse(ts.sum())
