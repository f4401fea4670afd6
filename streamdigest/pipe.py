"""
Synchronous in-memory pipe — one writer, one reader.

    pipe = Pipe()
    pipe.write(data)   # blocks until the reader has taken every byte
    pipe.read(n)       # up to n pending bytes, b"" once the writer closed

There is no internal buffer beyond the bytes of the write in flight, so a
writer can never run ahead of its reader (strict backpressure).

Closing:
  close_writer(exc)  → reader sees b"" (or exc raised) after pending bytes
  close_reader(exc)  → pending and later writes raise BrokenPipeError
"""

from __future__ import annotations

import threading

_EMPTY = memoryview(b"")


class Pipe:
    """Strict-handoff byte channel between a producer and a consumer thread."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._wlock = threading.Lock()       # serializes writers
        self._pending: memoryview = _EMPTY
        self._reader_closed = False
        self._writer_closed = False
        self._reader_exc: BaseException | None = None
        self._writer_exc: BaseException | None = None

    # ------------------------------------------------------------------
    # Writer side
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Hand *data* to the reader. Returns len(data) once all of it was taken."""
        view = memoryview(data).cast("B")
        with self._wlock, self._cond:
            if self._writer_closed:
                raise BrokenPipeError("write on closed pipe")
            if self._reader_closed:
                raise self._broken()
            if not view:
                return 0

            self._pending = view
            self._cond.notify_all()
            try:
                while self._pending and not self._reader_closed:
                    self._cond.wait()
                broken = bool(self._pending)
            finally:
                # The caller's buffer never outlives the write, even when interrupted.
                self._pending = _EMPTY

            if broken:
                # Reader went away mid-write; the rest is dropped.
                raise self._broken()
            return len(view)

    def close_writer(self, exc: BaseException | None = None) -> None:
        """No more writes. The reader gets *exc* instead of EOF if given."""
        with self._cond:
            if not self._writer_closed:
                self._writer_closed = True
                self._writer_exc = exc
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------

    def read(self, size: int = -1) -> bytes:
        """Return up to *size* bytes (all pending if negative); b"" at EOF."""
        with self._cond:
            while True:
                if self._reader_closed:
                    raise ValueError("read from closed pipe")
                if self._pending:
                    break
                if self._writer_closed:
                    if self._writer_exc is not None:
                        raise self._writer_exc
                    return b""
                self._cond.wait()

            n = len(self._pending) if size is None or size < 0 else size
            out = bytes(self._pending[:n])
            self._pending = self._pending[n:]
            if not self._pending:
                self._cond.notify_all()      # wake the blocked writer
            return out

    def close_reader(self, exc: BaseException | None = None) -> None:
        """Stop reading. Pending and later writes fail with BrokenPipeError."""
        with self._cond:
            if not self._reader_closed:
                self._reader_closed = True
                self._reader_exc = exc
            self._cond.notify_all()

    @property
    def reader_closed(self) -> bool:
        return self._reader_closed

    def _broken(self) -> BrokenPipeError:
        err = BrokenPipeError("write on closed pipe")
        err.__cause__ = self._reader_exc
        return err
