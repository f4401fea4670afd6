import io
import tarfile

import pytest

MTIME = 1_600_000_000


def _build_tar(entries, mtime=MTIME, fmt=tarfile.PAX_FORMAT) -> bytes:
    """entries: iterable of (name, data or None for a directory[, pax headers])."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=fmt) as tf:
        for entry in entries:
            name, data = entry[0], entry[1]
            ti = tarfile.TarInfo(name)
            ti.mtime = mtime
            if len(entry) > 2:
                ti.pax_headers = dict(entry[2])
            if data is None:
                ti.type = tarfile.DIRTYPE
                ti.mode = 0o755
                tf.addfile(ti)
            else:
                ti.mode = 0o644
                ti.size = len(data)
                tf.addfile(ti, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def make_tar():
    return _build_tar


@pytest.fixture
def layer_tar():
    return _build_tar([
        ("etc", None),
        ("etc/hostname", b"layer-host\n"),
        ("usr/bin/tool", b"#!/bin/sh\necho payload content\n" * 64),
    ])
