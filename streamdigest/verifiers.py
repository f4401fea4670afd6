"""
Streaming verifiers: write bytes as they arrive, ask once whether they match.

    with digest_verifier(Digest.parse(expected)) as v:
        for chunk in stream:
            v.write(chunk)
    ok = v.verified()

HashVerifier
------------
    md5 / sha1 / sha256 / blake3. Writes go straight into the hash;
    verified() may be called at any time.

LengthVerifier
--------------
    Counts bytes; verified() iff exactly the expected count was written.

TarSumVerifier
--------------
    TarSum only pulls from a reader, so each verifier owns a Pipe and a
    daemon thread draining TarSum from the pipe's reader side. write()
    blocks until that thread has taken the bytes.

    IMPORTANT: close() (or leaving the ``with`` block) MUST happen before
    verified(). Until the writer side is closed the thread has not seen the
    end of the archive and verified() only reflects a partial stream.
    close()/abort() also end the thread; a verifier that is dropped without
    either leaks it.

A digest that reaches a verifier is assumed to be valid. Anything else is a
caller bug and raises PreconditionError, never a recoverable error.
"""

from __future__ import annotations

import abc
import hashlib
import logging
import threading

from .digest import HASH_ALGORITHMS, Digest, DigestError, new_digest, new_hash
from .pipe import Pipe
from .tarsum import TARSUM_BLOCK, InvalidTarSum, NotTarSumVersion, TarSum, parse_tarsum, version_from_tarsum

log = logging.getLogger("streamdigest.verifiers")


class PreconditionError(AssertionError):
    """A verifier was built from input the caller should have rejected."""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class Verifier(abc.ABC):
    """Write-only sink that reports whether its input matched."""

    @abc.abstractmethod
    def write(self, data: bytes) -> int:
        """Append *data* to the verified stream; return the bytes taken."""

    @abc.abstractmethod
    def verified(self) -> bool:
        """True if everything written so far matches the expectation."""

    def close(self) -> None:
        """Release resources. Nothing to release for in-memory verifiers."""

    def __enter__(self) -> Verifier:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Direct hashes
# ---------------------------------------------------------------------------

class HashVerifier(Verifier):

    def __init__(self, digest: Digest) -> None:
        try:
            self._hash = new_hash(digest.algorithm)
        except DigestError as err:
            raise PreconditionError(f"Unsupported algorithm: {digest.algorithm}") from err
        self.digest = digest

    def write(self, data: bytes) -> int:
        self._hash.update(data)
        return len(data)

    def verified(self) -> bool:
        # hexdigest() does not finalize, later writes keep accumulating.
        return self.digest == new_digest(self.digest.algorithm, self._hash)


# ---------------------------------------------------------------------------
# Length
# ---------------------------------------------------------------------------

class LengthVerifier(Verifier):

    def __init__(self, expected: int) -> None:
        if expected < 0:
            raise PreconditionError(f"Negative expected length: {expected}")
        self.expected = expected
        self.length = 0

    def write(self, data: bytes) -> int:
        n = len(data)
        self.length += n
        return n

    def verified(self) -> bool:
        return self.length == self.expected


# ---------------------------------------------------------------------------
# TarSum bridge
# ---------------------------------------------------------------------------

class TarSumVerifier(Verifier):
    """Push-style verifier over the pull-only TarSum. Close before verified()."""

    def __init__(self, digest: Digest) -> None:
        s = str(digest)
        try:
            info = parse_tarsum(s)
            version = version_from_tarsum(s)
        except (InvalidTarSum, NotTarSumVersion) as err:
            raise PreconditionError(f"Unsupported digest: {s}") from err
        if info.algorithm not in hashlib.algorithms_available:
            raise PreconditionError(f"Unsupported tarsum hash: {info.algorithm}")

        self.digest = digest
        self._pipe = Pipe()
        self._ts = TarSum(self._pipe, version, info.algorithm)
        self._error: BaseException | None = None
        self._aborted = False
        self._thread = threading.Thread(
            target=self._consume, daemon=True, name="streamdigest-tarsum"
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Forward *data* to the consumer. Raises BrokenPipeError once it stopped."""
        return self._pipe.write(data)

    def close(self, timeout: float | None = None) -> None:
        """Signal end of stream and wait for the consumer to drain."""
        self._pipe.close_writer()
        self._thread.join(timeout)

    def abort(self, timeout: float | None = None) -> None:
        """Stop the consumer without waiting for the end of the archive.

        An aborted verifier never verifies.
        """
        self._aborted = True
        self._pipe.close_reader()
        self._pipe.close_writer()
        self._thread.join(timeout)

    @property
    def running(self) -> bool:
        """True while the consumer thread is alive."""
        return self._thread.is_alive()

    def verified(self) -> bool:
        if self.running:
            log.warning("verified() before close(): tarsum covers a partial stream")
        if self._aborted or self._error is not None:
            return False
        return self.digest == Digest.from_string(self._ts.sum())

    @property
    def error(self) -> BaseException | None:
        """Exception that stopped the consumer, if any."""
        return self._error

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _consume(self) -> None:
        log.debug("tarsum consumer started for %s", self.digest)
        try:
            while self._ts.read(TARSUM_BLOCK):
                pass
        except ValueError as exc:
            if not self._pipe.reader_closed:
                self._error = exc
                log.warning("tarsum consumer failed: %s", exc)
        except Exception as exc:
            self._error = exc
            log.warning("tarsum consumer failed: %s", exc)
        finally:
            self._pipe.close_reader(self._error)
            log.debug("tarsum consumer finished for %s", self.digest)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def digest_verifier(digest: Digest) -> Verifier:
    """Return the verifier matching *digest*'s algorithm."""
    if digest.algorithm in HASH_ALGORITHMS:
        return HashVerifier(digest)
    # Anything else must be a tarsum.
    return TarSumVerifier(digest)


def length_verifier(expected: int) -> Verifier:
    """Verifier that is satisfied by exactly *expected* bytes."""
    return LengthVerifier(expected)
