"""FileBlobStore: digest-addressed blob storage on the local file system."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from imgfetch.blobs._reader import ValidatingReader
from imgfetch.digest import SHA256, Digest, new_hasher
from imgfetch.errors import BlobNotFoundError, BlobStoreIOError, DigestMismatchError

if TYPE_CHECKING:
    from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1 << 20
_TEMP_PREFIX = "blobstore_tmp"


class FileBlobStore:
    """File-system blob store laid out as ``<root>/sha256/<hex>``.

    The store never holds a lock. Concurrent writers of one digest coordinate
    through an existence check and an atomic rename; they always write the same
    bytes, so whichever rename lands last is equally valid.
    """

    def __init__(self, root: str | Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """Initialize with a root directory, creating the layout if needed."""
        if chunk_size <= 0:
            msg = "chunk_size must be > 0."
            raise ValueError(msg)
        self._root = Path(root)
        self._chunk_size = chunk_size
        self.init()

    @property
    def root(self) -> Path:
        """Return the root directory path."""
        return self._root

    def init(self) -> None:
        """Create ``<root>/sha256``; safe to call repeatedly."""
        try:
            (self._root / SHA256).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create blob directory under {self._root}: {exc}"
            raise BlobStoreIOError(msg) from exc

    def path(self, digest: Digest | str) -> Path:
        """Return the expected path of ``digest``; the file may not exist."""
        parsed = Digest.parse(digest)
        return self._root / parsed.algorithm / parsed.hex

    def exists(self, digest: Digest | str) -> bool:
        """Check for a blob file by name only. Content is not validated."""
        try:
            path = self.path(digest)
        except (TypeError, ValueError):
            return False
        return path.exists()

    def write_small(self, data: bytes) -> Digest:
        """Store ``data`` under its SHA-256 digest and return the digest."""
        digest = Digest.of(data)
        if self.exists(digest):
            return digest
        self._write_bytes(self.path(digest), data, digest)
        return digest

    def write_small_with_digest(self, digest: Digest | str, data: bytes) -> None:
        """Store ``data`` after verifying it hashes to ``digest``.

        An already-present blob is accepted without comparing it to ``data``.
        """
        expected = Digest.parse(digest)
        if self.exists(expected):
            return
        actual = Digest.of(data)
        if actual != expected:
            raise DigestMismatchError(str(expected), str(actual))
        self._write_bytes(self.path(expected), data, expected)

    def write_large(self, digest: Digest | str, reader: BinaryIO) -> None:
        """Stream ``reader`` into the store as ``digest``.

        Content goes to a temporary file next to the final path while being
        hashed. It is renamed into place only when the hash matches; otherwise
        the temporary file is removed and :class:`DigestMismatchError` raised.
        """
        expected = Digest.parse(digest)
        final_path = self.path(expected)
        if final_path.exists():
            # The reader is always consumed to EOF.
            self._drain(reader)
            return

        try:
            fd, temp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX, dir=final_path.parent)
        except OSError as exc:
            msg = f"Cannot create temporary file for blob {expected}: {exc}"
            raise BlobStoreIOError(msg) from exc
        temp_path = Path(temp_name)

        try:
            hasher = new_hasher()
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = reader.read(self._chunk_size)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    try:
                        out.write(chunk)
                    except OSError as exc:
                        msg = f"Writing blob {expected} failed: {exc}"
                        raise BlobStoreIOError(msg) from exc

            actual = Digest.from_hasher(hasher)
            if actual != expected:
                raise DigestMismatchError(str(expected), str(actual), location=str(final_path))

            try:
                os.replace(temp_path, final_path)
            except OSError as exc:
                if final_path.exists():
                    logger.debug("Rename of %s lost a race; %s already present", temp_path, expected)
                    return
                msg = f"Renaming blob {expected} to its final location failed: {exc}"
                raise BlobStoreIOError(msg) from exc
        finally:
            temp_path.unlink(missing_ok=True)

    def read_small(self, digest: Digest | str) -> bytes:
        """Read a whole blob and verify it still matches its name.

        A blob whose content no longer matches is deleted before
        :class:`DigestMismatchError` is raised.
        """
        expected = Digest.parse(digest)
        path = self.path(expected)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFoundError(str(expected)) from None
        except OSError as exc:
            msg = f"Reading blob {expected} failed: {exc}"
            raise BlobStoreIOError(msg) from exc

        actual = Digest.of(data)
        if actual != expected:
            self._discard(path)
            raise DigestMismatchError(str(expected), str(actual), location=str(path))
        return data

    def open(self, digest: Digest | str) -> ValidatingReader:
        """Open a blob for streaming; the digest is checked at end-of-stream."""
        expected = Digest.parse(digest)
        path = self.path(expected)
        try:
            file = path.open("rb")
        except FileNotFoundError:
            raise BlobNotFoundError(str(expected)) from None
        except OSError as exc:
            msg = f"Opening blob {expected} failed: {exc}"
            raise BlobStoreIOError(msg) from exc
        return ValidatingReader(file, path=path, expected=expected, on_mismatch=lambda: self._discard(path))

    def _write_bytes(self, path: Path, data: bytes, digest: Digest) -> None:
        """Write a buffered blob to its final path."""
        try:
            path.write_bytes(data)
        except OSError as exc:
            msg = f"Writing blob {digest} failed: {exc}"
            raise BlobStoreIOError(msg) from exc

    def _drain(self, reader: BinaryIO) -> None:
        """Consume and discard the rest of ``reader``."""
        while reader.read(self._chunk_size):
            pass

    def _discard(self, path: Path) -> None:
        """Remove a corrupted blob file."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove corrupted blob %s: %s", path, exc)
            return
        logger.warning("Removed corrupted blob %s", path)
