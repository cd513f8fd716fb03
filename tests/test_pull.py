"""End-to-end tests for pull_image."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from imgfetch.blobs import FileBlobStore
from imgfetch.config import FetchConfig
from imgfetch.coordinator import FetchCoordinator
from imgfetch.digest import Digest
from imgfetch.errors import InvalidReferenceError, NestedIndexUnsupportedError
from imgfetch.layers import run_deferred
from imgfetch.mediatypes import OCI_MANIFEST
from imgfetch.pull import create_coordinator, embed_descriptor, pull_image
from imgfetch.types import LayerPolicy, Platform, Source

if TYPE_CHECKING:
    from conftest import FakeRegistry


def _multi_platform_image(registry: FakeRegistry, *, tag: str | None = None) -> Digest:
    amd64 = registry.add_manifest([b"base", b"amd64-app"], architecture="amd64")
    arm64 = registry.add_manifest([b"base", b"arm64-app"], architecture="arm64")
    return registry.add_index([(amd64, "linux", "amd64"), (arm64, "linux", "arm64")], tag=tag)


def test_shallow_pull_by_digest(coordinator: FetchCoordinator, registry: FakeRegistry, source: Source) -> None:
    root = _multi_platform_image(registry)
    image = pull_image(source, coordinator=coordinator, digest=str(root))

    assert image.digest == root
    assert image.canonical_id == f"library/busybox@{root}"
    assert image.result.platforms == {Platform("linux", "amd64"), Platform("linux", "arm64")}
    assert image.constraints == (("linux", "aarch64"), ("linux", "x86_64"))
    assert len(image.result.layer_digests) == 3
    assert len(image.files) == 5
    assert all(Path(path).exists() for path in image.files.values())
    layer_fetches = set(registry.calls_of("blob")) & {str(layer) for layer in image.result.layer_digests}
    assert layer_fetches == set()


def test_repeat_pull_is_served_from_store(
    coordinator: FetchCoordinator,
    registry: FakeRegistry,
    source: Source,
) -> None:
    root = _multi_platform_image(registry)
    pull_image(source, coordinator=coordinator, digest=str(root), policy="eager")
    registry.calls.clear()

    image = pull_image(source, coordinator=coordinator, digest=str(root), policy="eager")
    assert registry.calls == []
    assert len(image.files) == 8


def test_eager_pull_includes_layer_files(
    coordinator: FetchCoordinator,
    registry: FakeRegistry,
    store: FileBlobStore,
    source: Source,
) -> None:
    root = _multi_platform_image(registry)
    image = pull_image(source, coordinator=coordinator, digest=str(root), policy=LayerPolicy.EAGER)

    for layer in image.result.layer_digests:
        assert image.files[layer] == str(store.path(layer))
        assert registry.calls_of("blob").count(str(layer)) == 1


def test_lazy_pull_then_deferred_download(
    coordinator: FetchCoordinator,
    registry: FakeRegistry,
    store: FileBlobStore,
    source: Source,
) -> None:
    root = _multi_platform_image(registry)
    image = pull_image(source, coordinator=coordinator, digest=str(root), policy="lazy")

    assert image.layers.deferred is not None
    assert not any(store.exists(layer) for layer in image.result.layer_digests)
    run_deferred(image.layers.deferred, coordinator)
    assert all(store.exists(layer) for layer in image.result.layer_digests)


def test_tag_pull_requires_permission(coordinator: FetchCoordinator, registry: FakeRegistry, source: Source) -> None:
    _multi_platform_image(registry, tag="stable")
    with pytest.raises(InvalidReferenceError):
        pull_image(source, coordinator=coordinator, tag="stable")
    assert registry.calls == []


def test_tag_pull_learns_digest(coordinator: FetchCoordinator, registry: FakeRegistry, source: Source) -> None:
    root = _multi_platform_image(registry, tag="stable")
    image = pull_image(source, coordinator=coordinator, tag="stable", allow_tag_only=True)

    assert image.digest == root
    assert image.resolved.learned
    assert image.canonical_id == "library/busybox:stable"
    # the tag is resolved once; the walk then uses the stored digest-qualified root
    assert registry.calls_of("manifest").count("stable") == 1


def test_nested_index_aborts_pull(coordinator: FetchCoordinator, registry: FakeRegistry, source: Source) -> None:
    inner = _multi_platform_image(registry)
    root = registry.add_index([(inner, "linux", "amd64")], child_media_type="application/vnd.oci.image.index.v1+json")
    with pytest.raises(NestedIndexUnsupportedError):
        pull_image(source, coordinator=coordinator, digest=str(root))


def test_to_dict_is_json_serializable(coordinator: FetchCoordinator, registry: FakeRegistry, source: Source) -> None:
    root = _multi_platform_image(registry)
    image = pull_image(source, coordinator=coordinator, tag="1.0", digest=str(root), policy="lazy")
    payload = json.loads(json.dumps(image.to_dict()))

    assert payload["repository"] == "library/busybox"
    assert payload["sources"] == [
        {"repository": "library/busybox", "registries": ["mirror.example", "registry.example"]},
    ]
    assert payload["digest"] == str(root)
    assert payload["canonical_id"] == "library/busybox:1.0"
    assert payload["layer_handling"] == "lazy"
    assert payload["platforms"] == ["linux/amd64", "linux/arm64"]
    assert payload["constraints"] == [["linux", "aarch64"], ["linux", "x86_64"]]
    assert json.loads(payload["data"][str(root)])["mediaType"] == "application/vnd.oci.image.index.v1+json"
    assert len(payload["deferred"]["digests"]) == 3


def test_to_dict_embeds_non_utf8_descriptors_as_base64(
    coordinator: FetchCoordinator,
    registry: FakeRegistry,
    source: Source,
) -> None:
    config_bytes = b"\x89PNG\xff\xfe\x00\x01binary config"
    config = registry.add_blob(config_bytes)
    root = registry.add_json(
        {
            "schemaVersion": 2,
            "mediaType": OCI_MANIFEST,
            "config": {"mediaType": "application/octet-stream", "digest": str(config)},
            "layers": [],
        }
    )
    image = pull_image(source, coordinator=coordinator, digest=str(root))
    payload = json.loads(json.dumps(image.to_dict()))

    assert payload["data"][str(config)] == {
        "encoding": "base64",
        "data": base64.b64encode(config_bytes).decode("ascii"),
    }
    assert json.loads(payload["data"][str(root)])["config"]["digest"] == str(config)


def test_embed_descriptor() -> None:
    assert embed_descriptor(b'{"a": 1}') == '{"a": 1}'
    assert embed_descriptor(b"\xff") == {"encoding": "base64", "data": "/w=="}


def test_pull_passes_every_source_in_order(
    coordinator: FetchCoordinator,
    registry: FakeRegistry,
    source: Source,
) -> None:
    fallback = Source("mirror/busybox", ("backup.example",))
    root = _multi_platform_image(registry, tag="stable")
    image = pull_image([source, fallback], coordinator=coordinator, tag="stable", allow_tag_only=True, policy="eager")

    assert image.digest == root
    assert image.sources == (source, fallback)
    assert image.repository == "library/busybox"
    assert image.canonical_id == "library/busybox:stable"
    assert registry.sources_seen
    assert all(seen == (source, fallback) for seen in registry.sources_seen)

    payload = image.to_dict()
    assert payload["sources"] == [source.to_dict(), fallback.to_dict()]


def test_pull_requires_a_source(coordinator: FetchCoordinator) -> None:
    with pytest.raises(ValueError, match="At least one Source"):
        pull_image([], coordinator=coordinator, digest=str(Digest.of(b"x")))


def test_create_coordinator_from_config(tmp_path: Path) -> None:
    store = FileBlobStore(tmp_path / "blobs")
    coordinator = create_coordinator(FetchConfig(max_workers=2), store)
    assert isinstance(coordinator, FetchCoordinator)
    assert coordinator.store is store
