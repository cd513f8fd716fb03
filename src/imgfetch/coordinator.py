"""FetchCoordinator: store-aware fetching and fail-fast batch downloads."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from imgfetch.digest import Digest
from imgfetch.types import BlobRecord, DigestRef, Tag, as_sources, describe_sources

if TYPE_CHECKING:
    from collections.abc import Iterable

    from imgfetch.backends import DownloadBackend
    from imgfetch.blobs import BlobStore
    from imgfetch.types import Reference, Sources

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class FetchCoordinator:
    """Wrap a DownloadBackend with BlobStore short-circuits and batching.

    Data already in the store is authoritative: digest-qualified fetches of a
    present blob read it from disk and never touch the network.
    """

    def __init__(
        self,
        backend: DownloadBackend,
        store: BlobStore,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        """Initialize with a backend and the store it writes into."""
        if max_workers <= 0:
            msg = "max_workers must be > 0."
            raise ValueError(msg)
        self._backend = backend
        self._store = store
        self._max_workers = max_workers

    @property
    def store(self) -> BlobStore:
        """Return the BlobStore shared with the backend."""
        return self._store

    def fetch_blob(
        self,
        sources: Sources,
        digest: Digest | str,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Return a blob with its bytes, downloading it only when absent."""
        parsed = Digest.parse(digest)
        cached = self._cached(parsed)
        if cached is not None:
            return cached
        record = self._backend.fetch_blob(sources, parsed, cancel=cancel)
        if record.data is not None:
            return record
        return BlobRecord(digest=record.digest, path=record.path, data=self._store.read_small(record.digest))

    def fetch_manifest(
        self,
        sources: Sources,
        reference: Reference,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Return a manifest or index; digest references are served from the store when present."""
        if isinstance(reference, DigestRef):
            cached = self._cached(reference.digest)
            if cached is not None:
                return cached
        record = self._backend.fetch_manifest(sources, reference, cancel=cancel)
        if record.data is not None:
            return record
        return BlobRecord(digest=record.digest, path=record.path, data=self._store.read_small(record.digest))

    def learn_digest(self, sources: Sources, tag: str) -> Digest:
        """Fetch a manifest by tag once and return the digest of its bytes."""
        record = self._backend.fetch_manifest(sources, Tag(tag))
        logger.debug("Tag %s of %s resolved to %s", tag, describe_sources(sources), record.digest)
        return record.digest

    def fetch_blobs(self, sources: Sources, digests: Iterable[Digest | str]) -> dict[Digest, BlobRecord]:
        """Download independent blobs concurrently; all succeed or the batch fails.

        Blobs already present are not re-fetched. On the first failure, queued
        downloads are cancelled, in-flight ones are signalled to stop, and the
        error is re-raised once every worker has finished cleaning up.
        Records carry no in-memory data.
        """
        sources = as_sources(sources)
        unique = list(dict.fromkeys(Digest.parse(digest) for digest in digests))
        results: dict[Digest, BlobRecord] = {}
        missing: list[Digest] = []
        for digest in unique:
            if self._store.exists(digest):
                results[digest] = BlobRecord(digest=digest, path=self._store.path(digest))
            else:
                missing.append(digest)
        if not missing:
            return results

        logger.debug("Fetching %d blob(s) of %s", len(missing), describe_sources(sources))
        cancel = threading.Event()
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(missing))) as pool:
            futures = {
                pool.submit(self._backend.fetch_blob, sources, digest, cancel=cancel): digest for digest in missing
            }
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            errors = [error for error in (future.exception() for future in done) if error is not None]
            if errors:
                cancel.set()
                for future in pending:
                    future.cancel()
                wait(pending)
                raise errors[0]

        for future, digest in futures.items():
            results[digest] = future.result()
        return results

    def _cached(self, digest: Digest) -> BlobRecord | None:
        """Return a record read from the store, or ``None`` when the blob is absent."""
        if not self._store.exists(digest):
            return None
        logger.debug("Using cached blob %s", digest)
        data = self._store.read_small(digest)
        return BlobRecord(digest=digest, path=self._store.path(digest), data=data)
