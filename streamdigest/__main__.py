"""
streamdigest CLI entry point.

Usage:
    python -m streamdigest digest <path> [--algorithm ALG] [--tarsum-version V] [--zstd] [--quiet]
    python -m streamdigest verify <digest> <path> [--length N] [--zstd] [--quiet]

Exit codes: 0 verified / digest printed, 1 verification failed,
2 bad arguments (malformed digest, missing file).
"""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import ExitStack
from pathlib import Path

from .compress import is_zstd_path, open_payload
from .digest import HASH_ALGORITHMS, Digest, DigestError, new_digest, new_hash
from .progress import NullProgress, ProgressTracker
from .tarsum import DEFAULT_VERSION, TARSUM_BLOCK, TarSum, Version
from .transfer import CHUNK_SIZE, iter_chunks
from .verifiers import Verifier, digest_verifier, length_verifier

log = logging.getLogger("streamdigest.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        level=level,
    )


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------

def cmd_digest(args: argparse.Namespace) -> int:
    """Print the digest of a file."""
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: not a file: {path}", file=sys.stderr)
        return EXIT_USAGE

    zstd_frames = args.zstd or is_zstd_path(path)
    progress = _progress(args, "digest")
    try:
        with open_payload(path, zstd_frames) as fh, \
                progress.file(path.name, None if zstd_frames else path.stat().st_size) as fp:
            if args.algorithm == "tarsum":
                ts = TarSum(_Counted(fh, fp), Version(args.tarsum_version))
                while ts.read(TARSUM_BLOCK):
                    pass
                d = Digest.from_string(ts.sum())
            else:
                h = new_hash(args.algorithm)
                for chunk in iter_chunks(fh, CHUNK_SIZE):
                    h.update(chunk)
                    fp.advance(len(chunk))
                d = new_digest(args.algorithm, h)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        progress.stop()

    print(d)
    return EXIT_OK


def cmd_verify(args: argparse.Namespace) -> int:
    """Stream a file through the verifier for DIGEST."""
    try:
        expected = Digest.parse(args.digest)
    except DigestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    path = Path(args.path)
    if not path.is_file():
        print(f"Error: not a file: {path}", file=sys.stderr)
        return EXIT_USAGE
    if args.length is not None and args.length < 0:
        print("Error: --length must not be negative", file=sys.stderr)
        return EXIT_USAGE

    zstd_frames = args.zstd or is_zstd_path(path)
    progress = _progress(args, "verify")
    try:
        # Verifiers exit last: close() on success, abort() on any exception.
        with ExitStack() as stack:
            verifiers: list[tuple[str, Verifier]] = [
                (str(expected), stack.enter_context(digest_verifier(expected))),
            ]
            if args.length is not None:
                verifiers.append(
                    (f"length {args.length}", stack.enter_context(length_verifier(args.length))))

            fh = stack.enter_context(open_payload(path, zstd_frames))
            fp = stack.enter_context(
                progress.file(path.name, None if zstd_frames else path.stat().st_size))
            for chunk in iter_chunks(fh, CHUNK_SIZE):
                for _, v in verifiers:
                    v.write(chunk)
                fp.advance(len(chunk))
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        progress.stop()

    failed = [label for label, v in verifiers if not v.verified()]
    for label, _ in verifiers:
        log.debug("%s: %s", label, "FAILED" if label in failed else "OK")
    if failed:
        print(f"FAILED ({', '.join(failed)})")
        return EXIT_FAILED
    print("OK")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _Counted:
    """Reader wrapper advancing a progress bar by the bytes read."""

    def __init__(self, fh, fp) -> None:
        self._fh = fh
        self._fp = fp

    def read(self, size: int = -1) -> bytes:
        data = self._fh.read(size)
        self._fp.advance(len(data))
        return data


def _progress(args: argparse.Namespace, action: str) -> ProgressTracker | NullProgress:
    if args.quiet:
        return NullProgress()
    progress = ProgressTracker(action=action)
    progress.start()
    return progress


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamdigest",
        description="Compute and verify content digests (md5, sha1, sha256, blake3, tarsum)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    # --- digest ---
    p_digest = sub.add_parser("digest", help="Print the digest of a file")
    p_digest.add_argument("path", help="File to digest")
    p_digest.add_argument("--algorithm", default="sha256",
                          choices=[*HASH_ALGORITHMS, "tarsum"],
                          help="Digest algorithm (default sha256)")
    p_digest.add_argument("--tarsum-version", default=str(DEFAULT_VERSION),
                          choices=[str(v) for v in Version],
                          help=f"Tarsum version for --algorithm tarsum (default {DEFAULT_VERSION})")
    p_digest.add_argument("--zstd", action="store_true",
                          help="Input is zstd-compressed (implied by a .zst suffix)")
    p_digest.add_argument("--quiet", action="store_true", help="No progress bar")

    # --- verify ---
    p_verify = sub.add_parser("verify", help="Verify a file against a digest")
    p_verify.add_argument("digest", help="Expected digest, e.g. sha256:<hex>")
    p_verify.add_argument("path", help="File to verify")
    p_verify.add_argument("--length", type=int, default=None,
                          help="Also require exactly this many payload bytes")
    p_verify.add_argument("--zstd", action="store_true",
                          help="Input is zstd-compressed (implied by a .zst suffix)")
    p_verify.add_argument("--quiet", action="store_true", help="No progress bar")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    handlers = {
        "digest": cmd_digest,
        "verify": cmd_verify,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
