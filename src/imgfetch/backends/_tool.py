"""ExternalToolBackend: registry downloads through a helper executable."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from imgfetch.backends._base import check_cancelled
from imgfetch.blobs import put_file
from imgfetch.digest import Digest, is_pinned_digest
from imgfetch.errors import DigestMismatchError, FetchCancelledError, SubprocessFailureError
from imgfetch.types import BlobRecord, DigestRef, as_sources

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence

    from imgfetch.blobs import BlobStore
    from imgfetch.types import Reference, Sources

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
_COMMAND_NOT_FOUND = 127


def source_arguments(sources: Sources) -> list[str]:
    """Return one ``--source repo=reg1,reg2`` pair per Source, in fallback order."""
    arguments: list[str] = []
    for source in as_sources(sources):
        arguments += ["--source", source.to_argument()]
    return arguments


class ExternalToolBackend:
    """Run a helper binary for every download.

    The helper receives one ``--source repo=reg1,reg2`` flag per Source, in
    order, and does its own fallback across repositories and mirrors. It
    writes into a scratch directory; results are imported into the BlobStore
    only after digest validation.

    Commands::

        <tool> download-blob --digest D --output P --source R=REG[,REG...] [--source ...]
        <tool> download-manifest (--tag T | --digest D) --output P [--print-digest] --source ...
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        tool_path: str | Path,
        env: Mapping[str, str] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize with the BlobStore and the helper to invoke."""
        self._store = store
        self._tool_path = str(tool_path)
        self._env = dict(env or {})
        self._poll_interval = poll_interval

    def fetch_blob(
        self,
        sources: Sources,
        digest: Digest,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Download one blob with ``download-blob`` and import it into the store."""
        with tempfile.TemporaryDirectory(prefix="imgfetch-") as scratch:
            output = Path(scratch) / "blob"
            self._run(
                ["download-blob", "--digest", str(digest), "--output", str(output), *source_arguments(sources)],
                cancel=cancel,
            )
            put_file(self._store, output, digest)
        return BlobRecord(digest=digest, path=self._store.path(digest))

    def fetch_manifest(
        self,
        sources: Sources,
        reference: Reference,
        *,
        cancel: threading.Event | None = None,
    ) -> BlobRecord:
        """Download a manifest; by tag, the helper prints the digest it observed."""
        with tempfile.TemporaryDirectory(prefix="imgfetch-") as scratch:
            output = Path(scratch) / "manifest.json"
            if isinstance(reference, DigestRef):
                args = ["download-manifest", "--digest", str(reference.digest)]
            else:
                args = ["download-manifest", "--tag", reference.name, "--print-digest"]
            args += ["--output", str(output), *source_arguments(sources)]
            stdout = self._run(args, cancel=cancel)
            data = output.read_bytes()

        actual = Digest.of(data)
        if isinstance(reference, DigestRef):
            expected = reference.digest
        else:
            printed = stdout.strip()
            if not is_pinned_digest(printed):
                raise SubprocessFailureError(
                    self._command(args),
                    0,
                    f"Failed to learn digest from tag {reference.name}: invalid digest output {stdout!r}",
                )
            expected = Digest.parse(printed)
        if actual != expected:
            raise DigestMismatchError(str(expected), str(actual), location=self._tool_path)
        self._store.write_small_with_digest(actual, data)
        return BlobRecord(digest=actual, path=self._store.path(actual), data=data)

    def _command(self, args: Sequence[str]) -> list[str]:
        return [self._tool_path, *args]

    def _run(self, args: Sequence[str], *, cancel: threading.Event | None) -> str:
        """Run the helper, returning stdout; raise on non-zero exit or cancellation."""
        check_cancelled(cancel)
        command = self._command(args)
        logger.debug("Running %s", " ".join(command))
        env = {**os.environ, **self._env}
        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as exc:
            raise SubprocessFailureError(command, _COMMAND_NOT_FOUND, str(exc)) from exc

        while True:
            try:
                stdout, stderr = process.communicate(timeout=self._poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    process.kill()
                    process.communicate()
                    msg = f"{args[0]} cancelled."
                    raise FetchCancelledError(msg) from None

        if process.returncode != 0:
            raise SubprocessFailureError(command, process.returncode, stderr)
        return stdout
