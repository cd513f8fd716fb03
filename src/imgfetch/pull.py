"""pull_image: resolve, walk and materialize one image end to end."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from imgfetch.backends import create_backend
from imgfetch.coordinator import FetchCoordinator
from imgfetch.layers import LayerMaterializer
from imgfetch.manifests import ManifestGraphWalker
from imgfetch.platforms import constraints_for
from imgfetch.resolver import ReferenceResolver, canonical_id
from imgfetch.serde import as_str_object_dict, to_plain_data
from imgfetch.tracker import WarningTracker
from imgfetch.types import LayerPolicy, as_sources

if TYPE_CHECKING:
    import requests

    from imgfetch.blobs import BlobStore
    from imgfetch.config import FetchConfig
    from imgfetch.digest import Digest
    from imgfetch.layers import MaterializedLayers
    from imgfetch.resolver import ResolvedReference
    from imgfetch.types import PullResult, Source, Sources

logger = logging.getLogger(__name__)


def embed_descriptor(data: bytes) -> object:
    """Return ``data`` as UTF-8 text, or as a base64 object when it is not valid UTF-8."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return {"encoding": "base64", "data": base64.b64encode(data).decode("ascii")}


@dataclass(frozen=True, slots=True)
class PulledImage:
    """Everything a build collaborator needs from one pull."""

    sources: tuple[Source, ...]
    resolved: ResolvedReference
    result: PullResult
    layers: MaterializedLayers
    files: Mapping[Digest, str]
    canonical_id: str

    def __post_init__(self) -> None:
        """Normalize sources and freeze the digest -> path map."""
        object.__setattr__(self, "sources", as_sources(self.sources))
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    @property
    def repository(self) -> str:
        """Return the primary repository, the one named by ``canonical_id``."""
        return self.sources[0].repository

    @property
    def digest(self) -> Digest:
        """Return the root manifest or index digest."""
        return self.result.root_digest

    @property
    def constraints(self) -> tuple[tuple[str, str], ...]:
        """Return ``(os, cpu)`` constraint pairs for the discovered platforms."""
        return constraints_for(self.result.platforms)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-compatible description for generated build metadata.

        Manifest and config bytes are embedded as UTF-8 text; a descriptor that
        is not valid UTF-8 becomes ``{"encoding": "base64", "data": ...}``.
        """
        deferred = self.layers.deferred
        plain = to_plain_data(
            {
                "repository": self.repository,
                "sources": [source.to_dict() for source in self.sources],
                "tag": self.resolved.tag,
                "digest": self.digest,
                "canonical_id": self.canonical_id,
                "layer_handling": self.layers.policy,
                "data": {digest: embed_descriptor(data) for digest, data in self.result.descriptors.items()},
                "files": self.files,
                "layers": self.result.layer_digests,
                "platforms": sorted(str(platform) for platform in self.result.platforms),
                "constraints": self.constraints,
                "deferred": deferred.to_dict() if deferred is not None else None,
            }
        )
        return as_str_object_dict(plain, field_name="image")


def create_coordinator(
    config: FetchConfig,
    store: BlobStore,
    *,
    tracker: WarningTracker | None = None,
    session: requests.Session | None = None,
    env: Mapping[str, str] | None = None,
) -> FetchCoordinator:
    """Wire the configured backend and the store into a FetchCoordinator."""
    backend = create_backend(config, store, tracker=tracker, session=session, env=env)
    return FetchCoordinator(backend, store, max_workers=config.max_workers)


def pull_image(
    sources: Sources,
    *,
    coordinator: FetchCoordinator,
    tag: str | None = None,
    digest: str | None = None,
    policy: LayerPolicy | str = LayerPolicy.SHALLOW,
    allow_tag_only: bool = False,
    tracker: WarningTracker | None = None,
) -> PulledImage:
    """Pull one image: resolve the reference, walk manifests, then apply the layer policy.

    Manifests and configs are always fetched; ``policy`` only governs layers.
    Any failure aborts the pull; nothing partial is returned.
    """
    sources = as_sources(sources)
    tracker = tracker or WarningTracker()
    policy = LayerPolicy.parse(policy)

    resolved = ReferenceResolver(coordinator, tracker=tracker).resolve(
        sources,
        tag=tag,
        digest=digest,
        allow_tag_only=allow_tag_only,
    )
    result = ManifestGraphWalker(coordinator).walk(sources, resolved.reference)
    layers = LayerMaterializer(coordinator).materialize(sources, result.layer_digests, policy)

    files: dict[Digest, str] = {
        descriptor: str(coordinator.store.path(descriptor)) for descriptor in result.descriptors
    }
    files.update(layers.files)

    image = PulledImage(
        sources=sources,
        resolved=resolved,
        result=result,
        layers=layers,
        files=files,
        canonical_id=canonical_id(sources[0].repository, tag, result.root_digest),
    )
    logger.info(
        "Pulled %s as %s (%d descriptor(s), %d layer(s), %s)",
        image.canonical_id,
        image.digest,
        len(result.descriptors),
        len(result.layer_digests),
        policy.value,
    )
    return image
