"""Core data types: Source, Reference, BlobRecord, Platform, ManifestNode, PullResult."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from imgfetch.digest import Digest
from imgfetch.serde import as_str_object_dict, require_string, string_tuple

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_REGISTRY = "index.docker.io"


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    """Drop empty strings and repeated entries while keeping first occurrence order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return tuple(result)


@dataclass(frozen=True, slots=True)
class Source:
    """A repository and the registries serving it, in mirror fallback order."""

    repository: str
    registries: tuple[str, ...]

    def __post_init__(self) -> None:
        """Normalize registries into a tuple; unordered containers are rejected."""
        if isinstance(self.registries, (set, frozenset, Mapping)):
            msg = "Source.registries must be an ordered sequence, not a set or mapping."
            raise TypeError(msg)
        if isinstance(self.registries, str):
            msg = "Source.registries must be a sequence of host strings, not a single string."
            raise TypeError(msg)
        object.__setattr__(self, "registries", tuple(self.registries))
        if not self.repository:
            msg = "Source.repository cannot be empty."
            raise ValueError(msg)

    @classmethod
    def from_registry(
        cls,
        repository: str,
        registry: str | None = None,
        mirrors: Sequence[str] = (),
    ) -> Source:
        """Build a Source trying ``mirrors`` first and the primary ``registry`` last.

        When neither is given, Docker Hub (``index.docker.io``) is used.
        """
        ordered = _dedupe([*mirrors, registry or ""])
        if not ordered:
            ordered = (DEFAULT_REGISTRY,)
        return cls(repository=repository, registries=ordered)

    def to_argument(self) -> str:
        """Render as ``repo=reg1,reg2`` for the download helper's ``--source`` flag."""
        return f"{self.repository}={','.join(self.registries)}"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-compatible representation."""
        return {"repository": self.repository, "registries": list(self.registries)}

    @classmethod
    def from_dict(cls, value: Mapping[str, object]) -> Source:
        """Rebuild a Source produced by :meth:`to_dict`."""
        data = as_str_object_dict(value, field_name="source")
        return cls(
            repository=require_string(data.get("repository"), field_name="repository"),
            registries=string_tuple(data.get("registries"), field_name="registries"),
        )


Sources = Source | Sequence[Source]


def as_sources(sources: Sources) -> tuple[Source, ...]:
    """Normalize one Source or an ordered sequence of them into a non-empty tuple.

    Repositories are tried in the given order, each with its own mirror order.
    """
    if isinstance(sources, Source):
        return (sources,)
    if isinstance(sources, (str, set, frozenset, Mapping)) or not isinstance(sources, Sequence):
        msg = "sources must be a Source or an ordered sequence of Source objects."
        raise TypeError(msg)
    result = tuple(sources)
    for index, item in enumerate(result):
        if not isinstance(item, Source):
            msg = f"sources[{index}] must be a Source, got {type(item).__name__}."
            raise TypeError(msg)
    if not result:
        msg = "At least one Source is required."
        raise ValueError(msg)
    return result


def describe_sources(sources: Sources) -> str:
    """Return the repositories of ``sources`` joined for log and error messages."""
    return ", ".join(source.repository for source in as_sources(sources))


@dataclass(frozen=True, slots=True)
class Tag:
    """Mutable, untrusted image reference by tag name."""

    name: str

    def __str__(self) -> str:
        """Return the tag name."""
        return self.name


@dataclass(frozen=True, slots=True)
class DigestRef:
    """Trusted image reference by content digest."""

    digest: Digest

    def __str__(self) -> str:
        """Return the digest string."""
        return str(self.digest)


Reference = Tag | DigestRef


@dataclass(frozen=True, slots=True)
class BlobRecord:
    """A blob that landed in the BlobStore, optionally with its bytes in memory."""

    digest: Digest
    path: Path
    data: bytes | None = None


@dataclass(frozen=True, slots=True)
class Platform:
    """Operating system and CPU architecture of one image manifest."""

    os: str
    architecture: str
    variant: str | None = None

    def __str__(self) -> str:
        """Return ``os/arch`` or ``os/arch/variant``."""
        base = f"{self.os}/{self.architecture}"
        return f"{base}/{self.variant}" if self.variant else base

    @property
    def key(self) -> str:
        """Return the ``os_arch`` key used by the constraint table."""
        return f"{self.os}_{self.architecture}"


class MediaClass(str, Enum):
    """Classification of a manifest-like document."""

    INDEX = "index"
    MANIFEST = "manifest"


class LayerPolicy(str, Enum):
    """When layer blobs are materialized."""

    SHALLOW = "shallow"
    EAGER = "eager"
    LAZY = "lazy"

    @classmethod
    def parse(cls, value: LayerPolicy | str) -> LayerPolicy:
        """Parse a policy name, raising ``ValueError`` with the accepted values."""
        if isinstance(value, LayerPolicy):
            return value
        try:
            return cls(value)
        except ValueError:
            accepted = ", ".join(policy.value for policy in cls)
            msg = f"Invalid layer handling {value!r}. Expected one of: {accepted}."
            raise ValueError(msg) from None


@dataclass(frozen=True, slots=True)
class ManifestNode:
    """One decoded node of the manifest graph (an index or a manifest)."""

    digest: Digest
    media_type: str
    media_class: MediaClass
    data: bytes
    platform: Platform | None = None
    children: tuple[Digest, ...] = ()
    config_digest: Digest | None = None
    layer_digests: tuple[Digest, ...] = ()

    def __post_init__(self) -> None:
        """Normalize sequence fields to tuples."""
        object.__setattr__(self, "children", tuple(self.children))
        object.__setattr__(self, "layer_digests", tuple(self.layer_digests))


@dataclass(frozen=True, slots=True)
class PullResult:
    """Everything learned while walking one image's manifest graph."""

    root_digest: Digest
    descriptors: Mapping[Digest, bytes]
    layer_digests: frozenset[Digest]
    platforms: frozenset[Platform]
    nodes: tuple[ManifestNode, ...] = field(default=())

    def __post_init__(self) -> None:
        """Freeze containers so a result can be shared with collaborators."""
        object.__setattr__(self, "descriptors", MappingProxyType(dict(self.descriptors)))
        object.__setattr__(self, "layer_digests", frozenset(self.layer_digests))
        object.__setattr__(self, "platforms", frozenset(self.platforms))
        object.__setattr__(self, "nodes", tuple(self.nodes))

    @property
    def manifests(self) -> tuple[ManifestNode, ...]:
        """Return only the platform manifests (never the index)."""
        return tuple(node for node in self.nodes if node.media_class is MediaClass.MANIFEST)
