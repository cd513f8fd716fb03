"""FileBlobStore: digest-addressed writes, streaming reads, and self-healing on corruption."""

import io
import tempfile
from pathlib import Path

from imgfetch import Digest, DigestMismatchError, FileBlobStore, put_file

with tempfile.TemporaryDirectory() as tmpdir:
    store = FileBlobStore(Path(tmpdir) / "blobs")
    print(f"[File] root = {store.root}")

    # Small blobs are buffered; the digest is computed for you.
    digest = store.write_small(b'{"schemaVersion": 2}')
    print(f"  write_small() -> {digest}")
    print(f"  path() = {store.path(digest)}")
    print(f"  read_small() = {store.read_small(digest)!r}")

    # Large blobs are streamed through a temporary file and renamed into place.
    payload = b"layer data " * 10_000
    expected = Digest.of(payload)
    store.write_large(expected, io.BytesIO(payload))
    with store.open(expected) as reader:
        size = len(reader.read())
    print(f"  write_large() + open(): {size} bytes, verified={reader.verified}")

    # Wrong content never reaches the store.
    try:
        store.write_large(Digest.of(b"claimed"), io.BytesIO(b"actual"))
    except DigestMismatchError as exc:
        print(f"  rejected: {exc}")

    # Files on disk are imported with put_file.
    source = Path(tmpdir) / "config.json"
    source.write_bytes(b'{"os": "linux", "architecture": "amd64"}')
    imported = put_file(store, source, Digest.of(source.read_bytes()))
    print(f"  put_file() -> {imported}")

    # A blob corrupted on disk is removed the next time it is read.
    store.path(imported).write_bytes(b"bit rot")
    try:
        store.read_small(imported)
    except DigestMismatchError:
        print(f"  corrupted blob discarded, exists() = {store.exists(imported)}")
