import hashlib
import io

import blake3
import pytest

from streamdigest.digest import (
    Digest,
    InvalidDigestFormat,
    UnsupportedDigest,
    from_bytes,
    from_reader,
    from_tar_archive,
    new_hash,
)
from streamdigest.tarsum import Version

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_parse_and_format():
    d = Digest.parse(f"sha256:{ABC_SHA256}")
    assert d.algorithm == "sha256"
    assert d.hex == ABC_SHA256
    assert str(d) == f"sha256:{ABC_SHA256}"


def test_equality_includes_algorithm():
    assert Digest("sha256", "00") == Digest("sha256", "00")
    assert Digest("sha256", "00") != Digest("sha1", "00")
    assert Digest("tarsum.v1+sha256", "00") != Digest("sha256", "00")


def test_tarsum_algorithm_is_whole_prefix():
    d = Digest.parse("tarsum.v1+sha256:abcdef")
    assert d.algorithm == "tarsum.v1+sha256"
    assert d.hex == "abcdef"


@pytest.mark.parametrize("s", ["sha256", "sha256:", "sha256:a b", ":abc"])
def test_parse_rejects_malformed(s):
    with pytest.raises(InvalidDigestFormat):
        Digest.parse(s)


@pytest.mark.parametrize("s", [
    "crc32:cbf43926",
    "sha512:00",
    "tarsum.v1+sha256:xyz",
    "tarsum.v9+sha256:00",
    "tarsum.v1+nosuchhash:00",
])
def test_parse_rejects_unsupported(s):
    with pytest.raises(UnsupportedDigest):
        Digest.parse(s)


def test_from_string_does_not_validate():
    assert Digest.from_string("crc32:cbf43926") == Digest("crc32", "cbf43926")
    with pytest.raises(InvalidDigestFormat):
        Digest.from_string("no-separator")


def test_errors_are_value_errors():
    assert issubclass(InvalidDigestFormat, ValueError)
    assert issubclass(UnsupportedDigest, ValueError)


def test_from_bytes():
    assert from_bytes(b"abc") == Digest("sha256", ABC_SHA256)
    assert from_bytes(b"abc", "md5") == Digest("md5", hashlib.md5(b"abc").hexdigest())
    assert from_bytes(b"abc", "blake3") == Digest("blake3", blake3.blake3(b"abc").hexdigest())


def test_from_reader_chunking():
    data = bytes(range(256)) * 100
    assert from_reader(io.BytesIO(data), chunk_size=7) == from_bytes(data)
    assert from_reader(io.BytesIO(b"")) == from_bytes(b"")


def test_new_hash_unknown():
    with pytest.raises(UnsupportedDigest):
        new_hash("sha3_256")


def test_from_tar_archive(layer_tar):
    d = from_tar_archive(io.BytesIO(layer_tar))
    assert d.algorithm == "tarsum.v1+sha256"
    d.validate()
    assert from_tar_archive(io.BytesIO(layer_tar), Version.V0).algorithm == "tarsum+sha256"
