"""Shared fixtures: a FileBlobStore and an in-memory registry backend."""

from __future__ import annotations

import io
import json
import threading
from pathlib import Path

import pytest

from imgfetch.blobs import FileBlobStore
from imgfetch.coordinator import FetchCoordinator
from imgfetch.digest import Digest
from imgfetch.errors import NetworkFailureError
from imgfetch.mediatypes import OCI_INDEX, OCI_MANIFEST
from imgfetch.types import BlobRecord, DigestRef, Reference, Source, Sources, as_sources


def encode(document: dict[str, object]) -> bytes:
    return json.dumps(document, sort_keys=True).encode("utf-8")


class FakeRegistry:
    """DownloadBackend serving blobs and tags from memory, recording every call."""

    def __init__(self, store: FileBlobStore) -> None:
        self.store = store
        self.blobs: dict[Digest, bytes] = {}
        self.tags: dict[str, Digest] = {}
        self.calls: list[tuple[str, str]] = []
        self.sources_seen: list[tuple[Source, ...]] = []
        self._lock = threading.Lock()

    def add_blob(self, data: bytes) -> Digest:
        digest = Digest.of(data)
        self.blobs[digest] = data
        return digest

    def add_json(self, document: dict[str, object], *, tag: str | None = None) -> Digest:
        digest = self.add_blob(encode(document))
        if tag is not None:
            self.tags[tag] = digest
        return digest

    def add_manifest(
        self,
        layers: list[bytes],
        *,
        os: str = "linux",
        architecture: str = "amd64",
        media_type: str = OCI_MANIFEST,
        tag: str | None = None,
    ) -> Digest:
        config = self.add_json({"architecture": architecture, "os": os, "rootfs": {"type": "layers"}})
        document = {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": {"mediaType": "application/vnd.oci.image.config.v1+json", "digest": str(config)},
            "layers": [
                {"mediaType": "application/vnd.oci.image.layer.v1.tar+gzip", "digest": str(self.add_blob(layer))}
                for layer in layers
            ],
        }
        return self.add_json(document, tag=tag)

    def add_index(
        self,
        entries: list[tuple[Digest, str, str]],
        *,
        media_type: str = OCI_INDEX,
        child_media_type: str = OCI_MANIFEST,
        tag: str | None = None,
    ) -> Digest:
        document = {
            "schemaVersion": 2,
            "mediaType": media_type,
            "manifests": [
                {
                    "mediaType": child_media_type,
                    "digest": str(digest),
                    "platform": {"os": os, "architecture": architecture},
                }
                for digest, os, architecture in entries
            ],
        }
        return self.add_json(document, tag=tag)

    def calls_of(self, kind: str) -> list[str]:
        return [target for call_kind, target in self.calls if call_kind == kind]

    def fetch_blob(self, sources: Sources, digest: Digest, *, cancel: threading.Event | None = None) -> BlobRecord:
        ordered = as_sources(sources)
        with self._lock:
            self.calls.append(("blob", str(digest)))
            self.sources_seen.append(ordered)
        data = self.blobs.get(digest)
        if data is None:
            attempts = [(registry, "404 Not Found") for source in ordered for registry in source.registries]
            raise NetworkFailureError(f"blob {digest}", attempts)
        self.store.write_large(digest, io.BytesIO(data))
        return BlobRecord(digest=digest, path=self.store.path(digest))

    def fetch_manifest(
        self,
        sources: Sources,
        reference: Reference,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        ordered = as_sources(sources)
        with self._lock:
            self.calls.append(("manifest", str(reference)))
            self.sources_seen.append(ordered)
        if isinstance(reference, DigestRef):
            data = self.blobs.get(reference.digest)
            if data is None:
                raise NetworkFailureError(f"manifest {reference}", [])
            self.store.write_small_with_digest(reference.digest, data)
            digest = reference.digest
        else:
            tagged = self.tags.get(reference.name)
            if tagged is None:
                raise NetworkFailureError(f"manifest {reference}", [])
            data = self.blobs[tagged]
            digest = self.store.write_small(data)
        return BlobRecord(digest=digest, path=self.store.path(digest), data=data)


@pytest.fixture
def store(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "blobs")


@pytest.fixture
def registry(store: FileBlobStore) -> FakeRegistry:
    return FakeRegistry(store)


@pytest.fixture
def coordinator(registry: FakeRegistry, store: FileBlobStore) -> FetchCoordinator:
    return FetchCoordinator(registry, store, max_workers=4)


@pytest.fixture
def source() -> Source:
    return Source.from_registry("library/busybox", "registry.example", mirrors=["mirror.example"])
