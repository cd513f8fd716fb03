"""OCI and Docker media types for manifests and indexes."""

from __future__ import annotations

OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"

INDEX_MEDIA_TYPES = frozenset({OCI_INDEX, DOCKER_MANIFEST_LIST})
MANIFEST_MEDIA_TYPES = frozenset({OCI_MANIFEST, DOCKER_MANIFEST})

# Accept header for manifest requests, most specific first.
MANIFEST_ACCEPT = ", ".join((OCI_INDEX, DOCKER_MANIFEST_LIST, OCI_MANIFEST, DOCKER_MANIFEST))


def is_index(media_type: object) -> bool:
    """Return whether ``media_type`` names an image index or manifest list."""
    return isinstance(media_type, str) and media_type in INDEX_MEDIA_TYPES


def is_manifest(media_type: object) -> bool:
    """Return whether ``media_type`` names a single-platform image manifest."""
    return isinstance(media_type, str) and media_type in MANIFEST_MEDIA_TYPES
