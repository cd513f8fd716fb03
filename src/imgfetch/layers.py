"""LayerMaterializer: apply the shallow / eager / lazy layer policy."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from imgfetch.digest import Digest
from imgfetch.serde import as_str_object_dict, object_list, string_tuple, to_plain_data
from imgfetch.types import BlobRecord, LayerPolicy, Source, as_sources, describe_sources

if TYPE_CHECKING:
    from collections.abc import Iterable

    from imgfetch.coordinator import FetchCoordinator
    from imgfetch.types import Sources

logger = logging.getLogger(__name__)


def deferred_name(digest: Digest) -> str:
    """Return the output name a deferred download uses for ``digest`` (``sha256_<hex>``)."""
    return f"{digest.algorithm}_{digest.hex}"


@dataclass(frozen=True, slots=True)
class DeferredLayerDownload:
    """Layer downloads postponed to a later, separate invocation."""

    sources: tuple[Source, ...]
    digests: tuple[Digest, ...]

    def __post_init__(self) -> None:
        """Normalize sources and sort and de-duplicate digests."""
        object.__setattr__(self, "sources", as_sources(self.sources))
        object.__setattr__(self, "digests", tuple(sorted(set(self.digests))))

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-compatible representation."""
        plain = to_plain_data(
            {
                "sources": [source.to_dict() for source in self.sources],
                "digests": self.digests,
            }
        )
        return as_str_object_dict(plain, field_name="deferred")

    @classmethod
    def from_dict(cls, value: Mapping[str, object]) -> DeferredLayerDownload:
        """Rebuild a work item produced by :meth:`to_dict`."""
        data = as_str_object_dict(value, field_name="deferred")
        sources = tuple(Source.from_dict(item) for item in object_list(data.get("sources"), field_name="sources"))
        digests = tuple(Digest.parse(item) for item in string_tuple(data.get("digests"), field_name="digests"))
        return cls(sources=sources, digests=digests)


@dataclass(frozen=True, slots=True)
class MaterializedLayers:
    """Outcome of applying a layer policy."""

    policy: LayerPolicy
    files: Mapping[Digest, str] = field(default_factory=lambda: MappingProxyType({}))
    records: Mapping[Digest, BlobRecord] = field(default_factory=lambda: MappingProxyType({}))
    deferred: DeferredLayerDownload | None = None

    def __post_init__(self) -> None:
        """Freeze mappings."""
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))
        object.__setattr__(self, "records", MappingProxyType(dict(self.records)))


class LayerMaterializer:
    """Decide which layer blobs are downloaded now, later, or never.

    - ``shallow``: nothing is fetched; digests stay references.
    - ``eager``: every distinct layer is fetched now, concurrently, all-or-nothing.
    - ``lazy``: a DeferredLayerDownload is returned for a later invocation.
    """

    def __init__(self, coordinator: FetchCoordinator) -> None:
        """Initialize with the coordinator used for eager downloads."""
        self._coordinator = coordinator

    def materialize(
        self,
        sources: Sources,
        layer_digests: Iterable[Digest],
        policy: LayerPolicy | str,
    ) -> MaterializedLayers:
        """Apply ``policy`` to ``layer_digests``."""
        policy = LayerPolicy.parse(policy)
        digests = sorted(set(layer_digests))

        if policy is LayerPolicy.SHALLOW:
            logger.debug("Shallow pull: %d layer(s) left as references", len(digests))
            return MaterializedLayers(policy=policy)

        if policy is LayerPolicy.LAZY:
            deferred = DeferredLayerDownload(sources=as_sources(sources), digests=tuple(digests))
            logger.debug("Lazy pull: %d layer(s) deferred", len(digests))
            return MaterializedLayers(
                policy=policy,
                files={digest: deferred_name(digest) for digest in deferred.digests},
                deferred=deferred,
            )

        records = self._coordinator.fetch_blobs(sources, digests)
        logger.debug("Eager pull: %d layer(s) available locally", len(records))
        return MaterializedLayers(
            policy=policy,
            files={digest: str(record.path) for digest, record in records.items()},
            records=records,
        )


def run_deferred(item: DeferredLayerDownload, coordinator: FetchCoordinator) -> dict[Digest, BlobRecord]:
    """Execute a deferred layer download; blobs already present are skipped."""
    logger.info("Downloading %d deferred layer(s) of %s", len(item.digests), describe_sources(item.sources))
    return coordinator.fetch_blobs(item.sources, item.digests)
