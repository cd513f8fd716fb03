"""ValidatingReader: a blob stream that checks its digest at end-of-stream."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from imgfetch.digest import Digest, new_hasher
from imgfetch.errors import DigestMismatchError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from typing import BinaryIO

_DRAIN_CHUNK_SIZE = 1 << 20


class ValidatingReader(io.RawIOBase):
    """Read-only binary stream that hashes every byte it hands out.

    Bytes are delivered before validation completes. The read call that hits
    end-of-stream raises :class:`DigestMismatchError` when the content does not
    match the expected digest, so callers that act on partial output must be
    prepared to discard it.
    """

    def __init__(
        self,
        file: BinaryIO,
        *,
        path: Path,
        expected: Digest,
        on_mismatch: Callable[[], None] | None = None,
    ) -> None:
        """Wrap an open binary file for ``expected``."""
        super().__init__()
        self._file = file
        self._path = path
        self._expected = expected
        self._hasher = new_hasher()
        self._on_mismatch = on_mismatch
        self._verified = False
        self._error: DigestMismatchError | None = None

    @property
    def path(self) -> Path:
        """Return the path of the underlying blob file."""
        return self._path

    @property
    def verified(self) -> bool:
        """Return whether end-of-stream was reached with a matching digest."""
        return self._verified and self._error is None

    def readable(self) -> bool:
        """Return ``True``; this stream is read-only."""
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        """Read into ``buffer`` and hash the delivered bytes."""
        if self._error is not None:
            raise self._error
        count = self._file.readinto(buffer)  # type: ignore[attr-defined]
        if count:
            self._hasher.update(memoryview(buffer)[:count])
            return count
        self._finish()
        return 0

    def verify(self) -> None:
        """Drain the rest of the stream so the digest check runs."""
        while self.read(_DRAIN_CHUNK_SIZE):
            pass

    def close(self) -> None:
        """Close the underlying file."""
        if not self.closed:
            self._file.close()
        super().close()

    def _finish(self) -> None:
        if self._verified:
            return
        self._verified = True
        actual = Digest.from_hasher(self._hasher)
        if actual == self._expected:
            return
        self._error = DigestMismatchError(str(self._expected), str(actual), location=str(self._path))
        self._file.close()
        if self._on_mismatch is not None:
            self._on_mismatch()
        raise self._error
