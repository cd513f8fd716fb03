"""imgfetch: digest-addressed container image fetching and blob storage."""

import importlib.metadata as importlib_metadata

from imgfetch.backends import DownloadBackend, ExternalToolBackend, NativeHTTPBackend, create_backend
from imgfetch.blobs import BlobStore, FileBlobStore, ValidatingReader, put_file
from imgfetch.config import FetchConfig
from imgfetch.coordinator import FetchCoordinator
from imgfetch.digest import Digest, is_pinned_digest
from imgfetch.errors import (
    BlobNotFoundError,
    BlobStoreIOError,
    DigestMismatchError,
    FetchCancelledError,
    ImgfetchError,
    InvalidReferenceError,
    ManifestFormatError,
    NestedIndexUnsupportedError,
    NetworkFailureError,
    SubprocessFailureError,
    UnsupportedMediaTypeError,
)
from imgfetch.layers import DeferredLayerDownload, LayerMaterializer, MaterializedLayers, run_deferred
from imgfetch.manifests import ManifestGraphWalker
from imgfetch.pull import PulledImage, create_coordinator, pull_image
from imgfetch.resolver import ReferenceResolver, ResolvedReference
from imgfetch.tracker import WarningTracker
from imgfetch.types import (
    BlobRecord,
    DigestRef,
    LayerPolicy,
    ManifestNode,
    MediaClass,
    Platform,
    PullResult,
    Reference,
    Source,
    Sources,
    Tag,
    as_sources,
)


def _detect_version() -> str:
    """Return installed package version or a local fallback when metadata is unavailable."""
    try:
        return importlib_metadata.version("imgfetch")
    except importlib_metadata.PackageNotFoundError:
        return "0.0.0+unknown"


__version__ = _detect_version()

__all__ = [
    "BlobNotFoundError",
    "BlobRecord",
    "BlobStore",
    "BlobStoreIOError",
    "DeferredLayerDownload",
    "Digest",
    "DigestMismatchError",
    "DigestRef",
    "DownloadBackend",
    "ExternalToolBackend",
    "FetchCancelledError",
    "FetchConfig",
    "FetchCoordinator",
    "FileBlobStore",
    "ImgfetchError",
    "InvalidReferenceError",
    "LayerMaterializer",
    "LayerPolicy",
    "ManifestFormatError",
    "ManifestGraphWalker",
    "ManifestNode",
    "MaterializedLayers",
    "MediaClass",
    "NativeHTTPBackend",
    "NestedIndexUnsupportedError",
    "NetworkFailureError",
    "Platform",
    "PullResult",
    "PulledImage",
    "Reference",
    "ReferenceResolver",
    "ResolvedReference",
    "Source",
    "Sources",
    "SubprocessFailureError",
    "Tag",
    "UnsupportedMediaTypeError",
    "ValidatingReader",
    "WarningTracker",
    "as_sources",
    "create_backend",
    "create_coordinator",
    "is_pinned_digest",
    "pull_image",
    "put_file",
    "run_deferred",
]
