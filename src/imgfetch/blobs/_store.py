"""BlobStore: protocol for digest-addressed blob storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path

    from imgfetch.blobs._reader import ValidatingReader
    from imgfetch.digest import Digest


@runtime_checkable
class BlobStore(Protocol):
    """Content-addressed blob storage protocol.

    Every blob is named by the digest of its bytes. Writes validate content
    against the digest before it becomes visible under its final name; reads
    re-validate what is on disk.
    """

    def init(self) -> None:
        """Ensure the storage layout exists."""
        ...

    def exists(self, digest: Digest | str) -> bool:
        """Check whether a blob is present, without validating its content."""
        ...

    def write_small(self, data: bytes) -> Digest:
        """Store a buffered blob under its computed digest."""
        ...

    def write_small_with_digest(self, digest: Digest | str, data: bytes) -> None:
        """Store a buffered blob after checking it against a claimed digest."""
        ...

    def write_large(self, digest: Digest | str, reader: BinaryIO) -> None:
        """Stream a blob into the store, validating it before it is published."""
        ...

    def read_small(self, digest: Digest | str) -> bytes:
        """Read and validate a whole blob."""
        ...

    def open(self, digest: Digest | str) -> ValidatingReader:
        """Open a blob as a stream that validates at end-of-stream."""
        ...

    def path(self, digest: Digest | str) -> Path:
        """Return the expected filesystem path of a blob."""
        ...
