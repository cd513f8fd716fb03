"""ManifestGraphWalker: walk index -> manifests -> configs and collect layer digests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from imgfetch.errors import ManifestFormatError, NestedIndexUnsupportedError, UnsupportedMediaTypeError
from imgfetch.mediatypes import OCI_INDEX, OCI_MANIFEST, is_index, is_manifest
from imgfetch.platforms import platform_from
from imgfetch.serde import as_str_object_dict, decode_json_object, object_list, require_digest
from imgfetch.types import DigestRef, ManifestNode, MediaClass, Platform, PullResult, as_sources

if TYPE_CHECKING:
    from imgfetch.coordinator import FetchCoordinator
    from imgfetch.digest import Digest
    from imgfetch.types import BlobRecord, Reference, Sources

logger = logging.getLogger(__name__)


def classify(document: dict[str, object], *, digest: Digest | None = None) -> tuple[str, MediaClass]:
    """Return ``(media_type, class)`` for a decoded manifest-like document.

    OCI and Docker media types map onto the same two classes. Documents
    without ``mediaType`` are classified by shape.
    """
    media_type = document.get("mediaType")
    if is_index(media_type):
        return str(media_type), MediaClass.INDEX
    if is_manifest(media_type):
        return str(media_type), MediaClass.MANIFEST
    if media_type is None:
        if "manifests" in document:
            return OCI_INDEX, MediaClass.INDEX
        if "config" in document and "layers" in document:
            return OCI_MANIFEST, MediaClass.MANIFEST
    raise UnsupportedMediaTypeError(
        media_type if isinstance(media_type, str) or media_type is None else repr(media_type),
        digest=str(digest) if digest is not None else None,
    )


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """One child manifest listed by an image index."""

    digest: Digest
    media_type: str
    platform: Platform | None


def parse_index_entries(document: dict[str, object], *, digest: Digest) -> tuple[IndexEntry, ...]:
    """Validate every entry of an index before anything is fetched.

    Raises :class:`NestedIndexUnsupportedError` for the first entry that is
    itself an index. Entries of any other non-manifest type are skipped.
    """
    try:
        raw_entries = object_list(document.get("manifests"), field_name="manifests")
    except TypeError as exc:
        msg = f"Index {digest} is malformed: {exc}"
        raise ManifestFormatError(msg) from exc

    entries: list[IndexEntry] = []
    for position, entry in enumerate(raw_entries):
        media_type = entry.get("mediaType")
        if is_index(media_type):
            raise NestedIndexUnsupportedError(str(entry.get("digest")))
        if not is_manifest(media_type):
            logger.debug("Skipping entry %d of index %s with mediaType %r", position, digest, media_type)
            continue
        try:
            child = require_digest(entry.get("digest"), field_name=f"manifests[{position}].digest")
        except (TypeError, ValueError) as exc:
            msg = f"Index {digest} is malformed: {exc}"
            raise ManifestFormatError(msg) from exc
        platform = platform_from(entry.get("platform"))
        entries.append(IndexEntry(digest=child, media_type=str(media_type), platform=platform))
    return tuple(entries)


def parse_manifest(document: dict[str, object], *, digest: Digest) -> tuple[Digest, tuple[Digest, ...]]:
    """Return ``(config_digest, layer_digests)`` of a single-platform manifest."""
    try:
        config = as_str_object_dict(document.get("config"), field_name="config")
        config_digest = require_digest(config.get("digest"), field_name="config.digest")
        layers = object_list(document.get("layers"), field_name="layers")
        layer_digests = tuple(
            require_digest(layer.get("digest"), field_name=f"layers[{position}].digest")
            for position, layer in enumerate(layers)
        )
    except (TypeError, ValueError) as exc:
        msg = f"Manifest {digest} is malformed: {exc}"
        raise ManifestFormatError(msg) from exc
    return config_digest, layer_digests


class ManifestGraphWalker:
    """Fetch and decode an image's manifest graph.

    Manifests and configs are always fetched. Layer blobs are only recorded;
    deciding when to download them belongs to the LayerMaterializer.
    """

    def __init__(self, coordinator: FetchCoordinator) -> None:
        """Initialize with the coordinator used for every fetch."""
        self._coordinator = coordinator

    def walk(self, sources: Sources, reference: Reference) -> PullResult:
        """Fetch the root and everything below it except layers."""
        sources = as_sources(sources)
        root = self._coordinator.fetch_manifest(sources, reference)
        document = self._decode(root, what="manifest")
        media_type, media_class = classify(document, digest=root.digest)

        descriptors: dict[Digest, bytes] = {root.digest: self._data(root)}
        layer_digests: set[Digest] = set()
        platforms: set[Platform] = set()
        nodes: list[ManifestNode] = []

        if media_class is MediaClass.INDEX:
            entries = parse_index_entries(document, digest=root.digest)
            nodes.append(
                ManifestNode(
                    digest=root.digest,
                    media_type=media_type,
                    media_class=media_class,
                    data=self._data(root),
                    children=tuple(entry.digest for entry in entries),
                )
            )
            for entry in entries:
                record = self._coordinator.fetch_manifest(sources, DigestRef(entry.digest))
                descriptors[record.digest] = self._data(record)
                nodes.append(self._visit_manifest(sources, record, entry.platform, descriptors))
        else:
            nodes.append(self._visit_manifest(sources, root, None, descriptors, document=document))

        for node in nodes:
            layer_digests.update(node.layer_digests)
            if node.platform is not None:
                platforms.add(Platform(os=node.platform.os, architecture=node.platform.architecture))

        logger.debug(
            "Walked %s: %d manifest(s), %d distinct layer(s), platforms %s",
            root.digest,
            sum(1 for node in nodes if node.media_class is MediaClass.MANIFEST),
            len(layer_digests),
            sorted(str(platform) for platform in platforms),
        )
        return PullResult(
            root_digest=root.digest,
            descriptors=descriptors,
            layer_digests=frozenset(layer_digests),
            platforms=frozenset(platforms),
            nodes=tuple(nodes),
        )

    def _visit_manifest(
        self,
        sources: Sources,
        record: BlobRecord,
        platform: Platform | None,
        descriptors: dict[Digest, bytes],
        *,
        document: dict[str, object] | None = None,
    ) -> ManifestNode:
        """Fetch a manifest's config and describe the manifest as a node."""
        if document is None:
            document = self._decode(record, what="manifest")
        media_type, media_class = classify(document, digest=record.digest)
        if media_class is MediaClass.INDEX:
            raise NestedIndexUnsupportedError(str(record.digest))

        config_digest, layer_digests = parse_manifest(document, digest=record.digest)
        config = self._coordinator.fetch_blob(sources, config_digest)
        descriptors[config.digest] = self._data(config)
        if platform is None:
            platform = self._config_platform(config)

        return ManifestNode(
            digest=record.digest,
            media_type=media_type,
            media_class=media_class,
            data=self._data(record),
            platform=platform,
            config_digest=config_digest,
            layer_digests=layer_digests,
        )

    def _config_platform(self, config: BlobRecord) -> Platform | None:
        """Read os/architecture from an image config; non-JSON configs have none."""
        try:
            document = decode_json_object(self._data(config), what=f"config {config.digest}")
        except (TypeError, ValueError):
            logger.debug("Config %s carries no readable platform", config.digest)
            return None
        return platform_from(document)

    def _decode(self, record: BlobRecord, *, what: str) -> dict[str, object]:
        try:
            return decode_json_object(self._data(record), what=f"{what} {record.digest}")
        except (TypeError, ValueError) as exc:
            raise ManifestFormatError(str(exc)) from exc

    @staticmethod
    def _data(record: BlobRecord) -> bytes:
        if record.data is None:
            msg = f"Blob {record.digest} was fetched without its bytes."
            raise ManifestFormatError(msg)
        return record.data
