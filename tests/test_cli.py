import io

import pytest
import zstandard

from streamdigest import __main__ as cli
from streamdigest.__main__ import main
from streamdigest.digest import from_bytes, from_tar_archive
from streamdigest.verifiers import digest_verifier

PAYLOAD = b"streamed payload\n" * 1000


@pytest.fixture
def payload_file(tmp_path):
    p = tmp_path / "payload.bin"
    p.write_bytes(PAYLOAD)
    return p


def test_digest_default_sha256(payload_file, capsys):
    assert main(["digest", str(payload_file), "--quiet"]) == 0
    assert capsys.readouterr().out.strip() == str(from_bytes(PAYLOAD))


@pytest.mark.parametrize("alg", ["md5", "sha1", "blake3"])
def test_digest_other_algorithms(payload_file, capsys, alg):
    assert main(["digest", str(payload_file), "--algorithm", alg, "--quiet"]) == 0
    assert capsys.readouterr().out.strip() == str(from_bytes(PAYLOAD, alg))


def test_digest_tarsum(tmp_path, layer_tar, capsys):
    p = tmp_path / "layer.tar"
    p.write_bytes(layer_tar)
    assert main(["digest", str(p), "--algorithm", "tarsum", "--quiet"]) == 0
    assert capsys.readouterr().out.strip() == str(from_tar_archive(io.BytesIO(layer_tar)))


def test_digest_missing_file(tmp_path, capsys):
    assert main(["digest", str(tmp_path / "nope"), "--quiet"]) == 2
    assert "Error" in capsys.readouterr().err


def test_verify_ok(payload_file, capsys):
    d = str(from_bytes(PAYLOAD))
    assert main(["verify", d, str(payload_file), "--quiet"]) == 0
    assert capsys.readouterr().out.strip() == "OK"


def test_verify_with_length(payload_file, capsys):
    d = str(from_bytes(PAYLOAD))
    assert main(["verify", d, str(payload_file), "--length", str(len(PAYLOAD)), "--quiet"]) == 0
    assert main(["verify", d, str(payload_file), "--length", "1", "--quiet"]) == 1
    assert "length 1" in capsys.readouterr().out


def test_verify_mismatch(payload_file, capsys):
    d = str(from_bytes(PAYLOAD + b"x"))
    assert main(["verify", d, str(payload_file), "--quiet"]) == 1
    assert capsys.readouterr().out.startswith("FAILED")


def test_verify_bad_digest(payload_file, capsys):
    assert main(["verify", "sha256", str(payload_file), "--quiet"]) == 2
    assert main(["verify", "crc32:00", str(payload_file), "--quiet"]) == 2
    assert main(["verify", "tarsum.v9+sha256:00", str(payload_file), "--quiet"]) == 2


def test_verify_tarsum(tmp_path, layer_tar, capsys):
    p = tmp_path / "layer.tar"
    p.write_bytes(layer_tar)
    d = str(from_tar_archive(io.BytesIO(layer_tar)))
    assert main(["verify", d, str(p), "--quiet"]) == 0
    assert capsys.readouterr().out.strip() == "OK"


def test_verify_zstd_payload(tmp_path, layer_tar, capsys):
    p = tmp_path / "layer.tar.zst"
    p.write_bytes(zstandard.ZstdCompressor().compress(layer_tar))
    d = str(from_tar_archive(io.BytesIO(layer_tar)))
    assert main(["verify", d, str(p), "--quiet"]) == 0
    assert main(["digest", str(p), "--algorithm", "tarsum", "--quiet"]) == 0
    assert capsys.readouterr().out.split() == ["OK", d]


def test_verify_with_progress_bar(payload_file, capsys):
    d = str(from_bytes(PAYLOAD))
    assert main(["verify", d, str(payload_file)]) == 0
    assert main(["digest", str(payload_file)]) == 0
    assert capsys.readouterr().out.split() == ["OK", d]


@pytest.fixture
def failing_layer(tmp_path, layer_tar, monkeypatch):
    """Layer file whose read raises `failure[0]` after the first chunk."""
    p = tmp_path / "layer.tar"
    p.write_bytes(layer_tar)
    made = []
    failure = []

    def recording_verifier(digest):
        v = digest_verifier(digest)
        made.append(v)
        return v

    def failing_chunks(fh, chunk_size):
        yield fh.read(512)
        raise failure[0]

    monkeypatch.setattr(cli, "digest_verifier", recording_verifier)
    monkeypatch.setattr(cli, "iter_chunks", failing_chunks)
    d = str(from_tar_archive(io.BytesIO(layer_tar)))
    return ["verify", d, str(p), "--quiet"], made, failure


def test_verify_read_error_aborts_tarsum_consumer(failing_layer, capsys):
    argv, made, failure = failing_layer
    failure.append(OSError("device went away"))
    assert main(argv) == 1
    assert "device went away" in capsys.readouterr().err
    [v] = made
    assert not v.running
    assert not v.verified()


def test_verify_interrupt_aborts_tarsum_consumer(failing_layer):
    argv, made, failure = failing_layer
    failure.append(KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        main(argv)
    [v] = made
    assert not v.running
