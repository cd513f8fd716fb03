"""NativeHTTPBackend: registry downloads over the OCI distribution HTTP API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from imgfetch.backends._base import check_cancelled, try_registries
from imgfetch.digest import Digest
from imgfetch.errors import DigestMismatchError
from imgfetch.mediatypes import MANIFEST_ACCEPT
from imgfetch.tracker import WarningTracker
from imgfetch.types import BlobRecord, DigestRef, describe_sources

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator

    from imgfetch.blobs import BlobStore
    from imgfetch.types import Reference, Source, Sources

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_CHUNK_SIZE = 1 << 20


class _ChunkReader:
    """Minimal binary reader over a streamed response body."""

    def __init__(self, response: requests.Response, *, chunk_size: int, cancel: threading.Event | None) -> None:
        self._chunks: Iterator[bytes] = response.iter_content(chunk_size=chunk_size)
        self._cancel = cancel

    def read(self, size: int = -1) -> bytes:  # noqa: ARG002
        check_cancelled(self._cancel)
        for chunk in self._chunks:
            if chunk:
                return chunk
            check_cancelled(self._cancel)
        return b""


class NativeHTTPBackend:
    """Download blobs and manifests directly with ``requests``.

    Credentials are not negotiated here: pass a pre-authenticated
    :class:`requests.Session` (or one with ``session.auth`` set).
    Registries given as ``http://host`` are contacted in plain text and
    reported once per run through the WarningTracker; bare hosts use https.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        session: requests.Session | None = None,
        tracker: WarningTracker | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize with the BlobStore that receives downloads."""
        self._store = store
        self._session = session or requests.Session()
        self._tracker = tracker or WarningTracker()
        self._timeout = timeout
        self._chunk_size = chunk_size

    def fetch_blob(
        self,
        sources: Sources,
        digest: Digest,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Stream a blob from the first registry that serves it into the store."""

        def attempt(source: Source, registry: str) -> BlobRecord:
            url = f"{self._base_url(registry)}/v2/{source.repository}/blobs/{digest}"
            logger.debug("GET %s", url)
            with self._session.get(url, stream=True, timeout=self._timeout) as response:
                response.raise_for_status()
                reader = _ChunkReader(response, chunk_size=self._chunk_size, cancel=cancel)
                self._store.write_large(digest, reader)  # type: ignore[arg-type]
            return BlobRecord(digest=digest, path=self._store.path(digest))

        return try_registries(
            sources,
            f"blob {digest} of {describe_sources(sources)}",
            attempt,
            retryable=(requests.RequestException,),
            cancel=cancel,
        )

    def fetch_manifest(
        self,
        sources: Sources,
        reference: Reference,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Fetch a manifest or index; a tag fetch learns the digest from the bytes."""

        def attempt(source: Source, registry: str) -> BlobRecord:
            url = f"{self._base_url(registry)}/v2/{source.repository}/manifests/{reference}"
            logger.debug("GET %s", url)
            response = self._session.get(url, headers={"Accept": MANIFEST_ACCEPT}, timeout=self._timeout)
            response.raise_for_status()
            data = response.content
            digest = Digest.of(data)
            if isinstance(reference, DigestRef):
                if digest != reference.digest:
                    raise DigestMismatchError(str(reference.digest), str(digest), location=url)
                self._store.write_small_with_digest(digest, data)
            else:
                self._store.write_small(data)
                advertised = response.headers.get("Docker-Content-Digest")
                if advertised and advertised != str(digest):
                    logger.warning(
                        "Registry %s advertised digest %s for %s:%s but the content hashes to %s",
                        registry,
                        advertised,
                        source.repository,
                        reference,
                        digest,
                    )
            return BlobRecord(digest=digest, path=self._store.path(digest), data=data)

        return try_registries(
            sources,
            f"manifest {reference} of {describe_sources(sources)}",
            attempt,
            retryable=(requests.RequestException,),
            cancel=cancel,
        )

    def _base_url(self, registry: str) -> str:
        """Return the scheme-qualified base URL of ``registry``."""
        if registry.startswith("http://"):
            self._tracker.warn_unencrypted(registry)
            return registry.rstrip("/")
        if registry.startswith("https://"):
            return registry.rstrip("/")
        return f"https://{registry}"
