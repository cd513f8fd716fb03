"""Digest: content hash value type in ``algorithm:hex`` form."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping

SHA256 = "sha256"
SHA256_PREFIX = "sha256:"

# Registered algorithms and their hex lengths. Only SHA-256 is accepted by the store.
DIGEST_ALGORITHMS: Mapping[str, int] = MappingProxyType({SHA256: 64})

_HEX_PATTERN = re.compile(r"^[a-f0-9]+$")
_PINNED_DIGEST_LENGTH = len(SHA256_PREFIX) + DIGEST_ALGORITHMS[SHA256]


class Hasher(Protocol):
    """Incremental hash object as returned by :func:`new_hasher`."""

    def update(self, data: bytes, /) -> None: ...

    def hexdigest(self) -> str: ...


@dataclass(frozen=True, slots=True, order=True)
class Digest:
    """Immutable content digest, e.g. ``sha256:2cf24dba...``."""

    algorithm: str
    hex: str

    def __post_init__(self) -> None:
        """Validate algorithm and hex encoding."""
        expected_length = DIGEST_ALGORITHMS.get(self.algorithm)
        if expected_length is None:
            msg = f"Unsupported digest algorithm: {self.algorithm!r}."
            raise ValueError(msg)
        if len(self.hex) != expected_length or not _HEX_PATTERN.match(self.hex):
            msg = f"Invalid {self.algorithm} digest hex: {self.hex!r}."
            raise ValueError(msg)

    def __str__(self) -> str:
        """Return the canonical ``algorithm:hex`` string."""
        return f"{self.algorithm}:{self.hex}"

    @classmethod
    def parse(cls, value: Digest | str) -> Digest:
        """Parse ``sha256:<hex>`` (or a bare SHA-256 hex string) into a Digest."""
        if isinstance(value, Digest):
            return value
        if not isinstance(value, str):
            msg = f"Digest must be a string, got {type(value).__name__}."
            raise TypeError(msg)
        algorithm, sep, hex_part = value.partition(":")
        if not sep:
            return cls(SHA256, value)
        return cls(algorithm, hex_part)

    @classmethod
    def of(cls, data: bytes) -> Digest:
        """Compute the SHA-256 digest of ``data``."""
        return cls(SHA256, hashlib.sha256(data).hexdigest())

    @classmethod
    def from_hasher(cls, hasher: Hasher) -> Digest:
        """Build a Digest from a finished SHA-256 hasher."""
        return cls(SHA256, hasher.hexdigest())


def new_hasher() -> Hasher:
    """Return a fresh hasher for the store's digest algorithm."""
    return hashlib.sha256()


def is_pinned_digest(value: str | None) -> bool:
    """Return whether ``value`` is a full SHA-256 digest string usable as a trusted reference.

    Exactly 71 characters beginning with ``sha256:``; anything else is
    treated as absent.
    """
    if not value:
        return False
    return len(value) == _PINNED_DIGEST_LENGTH and value.startswith(SHA256_PREFIX)


def try_parse(value: Digest | str | None) -> Digest | None:
    """Parse ``value`` into a Digest, returning ``None`` when it is not a digest."""
    if value is None:
        return None
    try:
        return Digest.parse(value)
    except (TypeError, ValueError):
        return None
