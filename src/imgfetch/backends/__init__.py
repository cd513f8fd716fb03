"""Download backends for imgfetch."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imgfetch.backends._base import DownloadBackend, try_registries
from imgfetch.backends._http import NativeHTTPBackend
from imgfetch.backends._tool import ExternalToolBackend

if TYPE_CHECKING:
    from collections.abc import Mapping

    import requests

    from imgfetch.blobs import BlobStore
    from imgfetch.config import FetchConfig
    from imgfetch.tracker import WarningTracker


def create_backend(
    config: FetchConfig,
    store: BlobStore,
    *,
    tracker: WarningTracker | None = None,
    session: requests.Session | None = None,
    env: Mapping[str, str] | None = None,
) -> DownloadBackend:
    """Build the backend named by ``config.downloader``."""
    if config.downloader == "tool":
        return ExternalToolBackend(store, tool_path=config.tool_path, env=env)
    return NativeHTTPBackend(
        store,
        session=session,
        tracker=tracker,
        timeout=config.timeout,
        chunk_size=config.chunk_size,
    )


__all__ = [
    "DownloadBackend",
    "ExternalToolBackend",
    "NativeHTTPBackend",
    "create_backend",
    "try_registries",
]
