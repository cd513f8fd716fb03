"""DownloadBackend protocol and shared mirror-fallback logic."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

from imgfetch.errors import FetchCancelledError, NetworkFailureError
from imgfetch.types import as_sources

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

    from imgfetch.digest import Digest
    from imgfetch.types import BlobRecord, Reference, Source, Sources

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class DownloadBackend(Protocol):
    """Uniform fetch contract shared by every transport.

    Implementations try each Source in order, and each Source's registries
    in order, returning on the first success. Content fetched by digest is
    checked against that digest before it is returned, even when the store
    already holds it, and lands in the BlobStore the backend was built with.
    """

    def fetch_blob(
        self,
        sources: Sources,
        digest: Digest,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Download one blob into the store."""
        ...

    def fetch_manifest(
        self,
        sources: Sources,
        reference: Reference,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Download a manifest or index by tag or digest; the record carries its bytes."""
        ...


def check_cancelled(cancel: threading.Event | None) -> None:
    """Raise :class:`FetchCancelledError` when ``cancel`` is set."""
    if cancel is not None and cancel.is_set():
        msg = "Fetch cancelled."
        raise FetchCancelledError(msg)


def try_registries(
    sources: Sources,
    what: str,
    attempt: Callable[[Source, str], T],
    *,
    retryable: tuple[type[BaseException], ...],
    cancel: threading.Event | None = None,
) -> T:
    """Call ``attempt(source, registry)`` until one succeeds.

    Repositories are tried in order and, within each, its registries in
    order. Only exceptions listed in ``retryable`` move on to the next
    mirror; any other error propagates immediately.
    """
    ordered = as_sources(sources)
    attempts: list[tuple[str, str]] = []
    for source in ordered:
        for registry in source.registries:
            check_cancelled(cancel)
            try:
                return attempt(source, registry)
            except retryable as exc:
                logger.debug("Fetching %s from %s/%s failed: %s", what, registry, source.repository, exc)
                label = registry if len(ordered) == 1 else f"{registry}/{source.repository}"
                attempts.append((label, str(exc)))
    raise NetworkFailureError(what, attempts)
