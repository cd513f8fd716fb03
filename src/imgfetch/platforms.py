"""Platform constraint table: which (os, architecture) pairs a build can target."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from imgfetch.types import Platform

if TYPE_CHECKING:
    from collections.abc import Iterable

# OCI platform values -> constraint names understood by build collaborators.
OS_CONSTRAINTS: Mapping[str, str] = MappingProxyType(
    {
        "linux": "linux",
        "windows": "windows",
        "darwin": "macos",
        "freebsd": "freebsd",
    }
)

ARCH_CONSTRAINTS: Mapping[str, str] = MappingProxyType(
    {
        "amd64": "x86_64",
        "386": "x86_32",
        "arm64": "aarch64",
        "arm": "arm",
        "ppc64le": "ppc64le",
        "s390x": "s390x",
        "riscv64": "riscv64",
    }
)


def has_constraint(os: str, architecture: str) -> bool:
    """Return whether both ``os`` and ``architecture`` appear in the constraint table."""
    return os in OS_CONSTRAINTS and architecture in ARCH_CONSTRAINTS


def platform_from(value: object) -> Platform | None:
    """Build a Platform from an index ``platform`` entry or an image config.

    Returns ``None`` when the mapping lacks os/architecture or names a pair the
    constraint table does not know.
    """
    if not isinstance(value, Mapping):
        return None
    os = value.get("os")
    architecture = value.get("architecture")
    variant = value.get("variant")
    if not isinstance(os, str) or not isinstance(architecture, str) or not os or not architecture:
        return None
    if not has_constraint(os, architecture):
        return None
    return Platform(os=os, architecture=architecture, variant=variant if isinstance(variant, str) and variant else None)


def constraints_for(platforms: Iterable[Platform]) -> tuple[tuple[str, str], ...]:
    """Map platforms to sorted, de-duplicated ``(os, cpu)`` constraint pairs."""
    pairs = {
        (OS_CONSTRAINTS[platform.os], ARCH_CONSTRAINTS[platform.architecture])
        for platform in platforms
        if has_constraint(platform.os, platform.architecture)
    }
    return tuple(sorted(pairs))
