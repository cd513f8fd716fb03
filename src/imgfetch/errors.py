"""Typed errors for imgfetch."""

from __future__ import annotations

from collections.abc import Sequence


class ImgfetchError(Exception):
    """Base exception for all imgfetch errors."""


class BlobNotFoundError(ImgfetchError):
    """Raised when a digest has no blob in the BlobStore."""

    def __init__(self, digest: str) -> None:
        """Initialize with the missing blob's digest."""
        self.digest = digest
        super().__init__(f"Blob not found: {digest}")


class DigestMismatchError(ImgfetchError):
    """Raised when content does not hash to the digest it claims."""

    def __init__(self, expected: str, actual: str, *, location: str | None = None) -> None:
        """Initialize with the expected and observed digests."""
        self.expected = expected
        self.actual = actual
        self.location = location
        where = f" at {location}" if location else ""
        super().__init__(f"Digest mismatch{where}: expected {expected}, got {actual}")


class InvalidReferenceError(ImgfetchError):
    """Raised when neither a usable tag nor a usable digest is available."""


class UnsupportedMediaTypeError(ImgfetchError):
    """Raised when a root blob is neither an image index nor an image manifest."""

    def __init__(self, media_type: str | None, *, digest: str | None = None) -> None:
        """Initialize with the offending media type."""
        self.media_type = media_type
        self.digest = digest
        suffix = f" ({digest})" if digest else ""
        super().__init__(f"Unsupported mediaType in manifest{suffix}: {media_type!r}")


class NestedIndexUnsupportedError(ImgfetchError):
    """Raised when an image index references another image index."""

    def __init__(self, digest: str) -> None:
        """Initialize with the digest of the nested index entry."""
        self.digest = digest
        super().__init__(f"Image index referenced another index ({digest}). Nested indexes are not supported.")


class ManifestFormatError(ImgfetchError):
    """Raised when a manifest or index document is structurally invalid."""


class SubprocessFailureError(ImgfetchError):
    """Raised when the external download helper exits unsuccessfully."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str) -> None:
        """Initialize with the command, exit code and captured stderr."""
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        name = self.command[1] if len(self.command) > 1 else " ".join(self.command)
        super().__init__(f"{name} failed with exit code {returncode}: {stderr.strip()}")


class NetworkFailureError(ImgfetchError):
    """Raised when every mirror failed for one fetch."""

    def __init__(self, what: str, attempts: Sequence[tuple[str, str]]) -> None:
        """Initialize with the fetched object and ``(registry, error)`` pairs."""
        self.what = what
        self.attempts = tuple(attempts)
        if self.attempts:
            details = "; ".join(f"{registry}: {error}" for registry, error in self.attempts)
        else:
            details = "no registries configured"
        super().__init__(f"Failed to fetch {what} from all mirrors: {details}")


class FetchCancelledError(ImgfetchError):
    """Raised inside a fetch that was abandoned by its caller."""


class BlobStoreIOError(ImgfetchError, OSError):
    """Raised for filesystem failures that are unrelated to content integrity."""
