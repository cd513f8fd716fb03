"""Helper functions for blob operations."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from imgfetch.digest import Digest

if TYPE_CHECKING:
    from imgfetch.blobs._store import BlobStore


def put_file(store: BlobStore, path: str | Path, digest: Digest | str) -> Digest:
    """Import the file at ``path`` into ``store`` as ``digest``.

    The file is streamed through ``write_large``, so it is validated against
    ``digest`` before it appears in the store. The source file is left alone.
    """
    expected = Digest.parse(digest)
    with Path(path).open("rb") as reader:
        store.write_large(expected, reader)
    return expected
