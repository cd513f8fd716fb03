"""Pull an image from a local registry (e.g. ``docker run -p 5000:5000 registry:2``).

Settings come from IMGFETCH_* environment variables; see FetchConfig.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from imgfetch import FetchConfig, FileBlobStore, Source, WarningTracker, create_coordinator, pull_image, run_deferred

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

registry = os.environ.get("REGISTRY", "http://localhost:5000")
repository = os.environ.get("REPOSITORY", "library/busybox")
fallback_repository = os.environ.get("FALLBACK_REPOSITORY")
tag = os.environ.get("TAG", "latest")
digest = os.environ.get("DIGEST")

config = FetchConfig.from_env()
tracker = WarningTracker()

with tempfile.TemporaryDirectory() as tmpdir:
    store = FileBlobStore(Path(tmpdir) / "blobs", chunk_size=config.chunk_size)
    coordinator = create_coordinator(config, store, tracker=tracker)
    sources = [Source.from_registry(repository, registry)]
    if fallback_repository:
        sources.append(Source.from_registry(fallback_repository, registry))

    image = pull_image(
        sources,
        coordinator=coordinator,
        tag=tag,
        digest=digest,
        policy=config.layer_handling,
        allow_tag_only=digest is None,
        tracker=tracker,
    )
    print(f"Pulled {image.canonical_id}")
    print(f"  digest = {image.digest}")
    print(f"  platforms = {sorted(str(platform) for platform in image.result.platforms)}")
    print(f"  constraints = {image.constraints}")
    print(f"  layers = {len(image.result.layer_digests)} ({image.layers.policy.value})")

    if image.layers.deferred is not None:
        records = run_deferred(image.layers.deferred, coordinator)
        print(f"  deferred download fetched {len(records)} layer(s)")

    print(json.dumps(image.to_dict()["files"], indent=2))
