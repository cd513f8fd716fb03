"""ReferenceResolver: turn a (tag, digest) pair into one trusted reference."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from imgfetch.digest import Digest, is_pinned_digest
from imgfetch.errors import InvalidReferenceError
from imgfetch.tracker import WarningTracker
from imgfetch.types import DigestRef, Tag, as_sources

if TYPE_CHECKING:
    from imgfetch.coordinator import FetchCoordinator
    from imgfetch.types import Reference, Source, Sources

logger = logging.getLogger(__name__)

_MISSING_REFERENCE = "either digest or tag must be specified"


@dataclass(frozen=True, slots=True)
class ResolvedReference:
    """The reference used for every fetch of one pull."""

    reference: Reference
    tag: str | None = None
    learned: bool = False

    @property
    def digest(self) -> Digest | None:
        """Return the pinned digest, if the reference is digest-qualified."""
        if isinstance(self.reference, DigestRef):
            return self.reference.digest
        return None


def canonical_reference(tag: str | None, digest: Digest | str | None) -> Reference:
    """Pick the digest when it is a valid pin, otherwise the tag verbatim."""
    if isinstance(digest, Digest):
        return DigestRef(digest)
    if is_pinned_digest(digest):
        try:
            return DigestRef(Digest.parse(digest))  # type: ignore[arg-type]
        except ValueError as exc:
            msg = f"Malformed digest {digest!r}: {exc}"
            raise InvalidReferenceError(msg) from None
    if tag:
        return Tag(tag)
    raise InvalidReferenceError(_MISSING_REFERENCE)


def canonical_id(repository: str, tag: str | None, digest: Digest | str | None) -> str:
    """Return ``repo:tag`` when tagged, else ``repo@digest``."""
    if tag:
        return f"{repository}:{tag}"
    return f"{repository}@{digest}"


class ReferenceResolver:
    """Resolve the reference for a pull, learning the digest from a tag when allowed."""

    def __init__(self, coordinator: FetchCoordinator, *, tracker: WarningTracker | None = None) -> None:
        """Initialize with the coordinator used for the tag round-trip."""
        self._coordinator = coordinator
        self._tracker = tracker or WarningTracker()

    def resolve(
        self,
        sources: Sources,
        *,
        tag: str | None = None,
        digest: str | None = None,
        allow_tag_only: bool = False,
    ) -> ResolvedReference:
        """Return the digest-qualified reference used for every fetch from ``sources``.

        A digest counts only if it is exactly ``sha256:`` plus 64 characters.
        Without one, tag-only pulls must be explicitly allowed; the tag is then
        resolved with one extra manifest fetch and a warning is emitted once.
        """
        sources = as_sources(sources)
        repository = sources[0].repository
        self._check_registries(sources)

        if is_pinned_digest(digest):
            return ResolvedReference(reference=canonical_reference(tag, digest), tag=tag or None)

        if not allow_tag_only:
            if not tag and not digest:
                raise InvalidReferenceError(_MISSING_REFERENCE)
            msg = (
                f"Missing valid image digest for {repository}"
                f"{':' + tag if tag else ''} (got digest {digest!r}). "
                "Specify a full sha256 digest or allow pulling by tag without a digest."
            )
            raise InvalidReferenceError(msg)

        if not tag:
            if digest:
                msg = f"Invalid digest {digest!r} and no tag to resolve for {repository}."
                raise InvalidReferenceError(msg)
            raise InvalidReferenceError(_MISSING_REFERENCE)

        learned = self._coordinator.learn_digest(sources, tag)
        self._tracker.warn_once(
            f"unpinned:{repository}:{tag}",
            "Pulling %s:%s without a digest; the tag currently resolves to %s. "
            "Pin this digest for reproducible pulls.",
            repository,
            tag,
            learned,
        )
        return ResolvedReference(reference=canonical_reference(tag, learned), tag=tag, learned=True)

    def _check_registries(self, sources: tuple[Source, ...]) -> None:
        """Hint about the common Docker Hub host mistake."""
        if any("docker.io" in source.registries for source in sources):
            self._tracker.warn_once(
                "docker.io-hint",
                'Specified docker.io as registry. Did you mean "index.docker.io"?',
            )
