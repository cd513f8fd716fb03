"""Tests for ValidatingReader."""

from pathlib import Path

import pytest

from imgfetch.blobs import ValidatingReader
from imgfetch.digest import Digest
from imgfetch.errors import DigestMismatchError


def _reader(path: Path, expected: Digest, calls: list[str] | None = None) -> ValidatingReader:
    on_mismatch = (lambda: calls.append("discard")) if calls is not None else None
    return ValidatingReader(path.open("rb"), path=path, expected=expected, on_mismatch=on_mismatch)


def test_partial_reads_are_not_verified(tmp_path: Path) -> None:
    path = tmp_path / "blob"
    path.write_bytes(b"abcdef")
    reader = _reader(path, Digest.of(b"abcdef"))
    assert reader.read(3) == b"abc"
    assert not reader.verified
    assert reader.read(3) == b"def"
    assert reader.read(3) == b""
    assert reader.verified
    reader.close()


def test_verify_drains_remaining_bytes(tmp_path: Path) -> None:
    path = tmp_path / "blob"
    path.write_bytes(b"x" * 10_000)
    reader = _reader(path, Digest.of(b"x" * 10_000))
    reader.read(10)
    reader.verify()
    assert reader.verified
    assert reader.path == path
    reader.close()


def test_mismatch_raises_at_end_of_stream(tmp_path: Path) -> None:
    path = tmp_path / "blob"
    path.write_bytes(b"actual")
    calls: list[str] = []
    reader = _reader(path, Digest.of(b"claimed"), calls)

    assert reader.read(6) == b"actual"
    with pytest.raises(DigestMismatchError) as exc_info:
        reader.read(6)
    assert exc_info.value.location == str(path)
    assert calls == ["discard"]
    assert not reader.verified


def test_reads_after_mismatch_keep_failing(tmp_path: Path) -> None:
    path = tmp_path / "blob"
    path.write_bytes(b"actual")
    calls: list[str] = []
    reader = _reader(path, Digest.of(b"claimed"), calls)

    with pytest.raises(DigestMismatchError):
        reader.verify()
    with pytest.raises(DigestMismatchError):
        reader.read(1)
    assert calls == ["discard"]
    reader.close()


def test_reader_is_read_only(tmp_path: Path) -> None:
    path = tmp_path / "blob"
    path.write_bytes(b"")
    reader = _reader(path, Digest.of(b""))
    assert reader.readable()
    assert not reader.writable()
    reader.close()
    assert reader.closed
