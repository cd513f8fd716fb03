"""FetchConfig: runtime settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from imgfetch.types import LayerPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

Downloader = Literal["native", "tool"]
_DOWNLOADERS = ("native", "tool")


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    """Read a positive integer setting."""
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}."
        raise ValueError(msg) from None
    if value <= 0:
        msg = f"{name} must be > 0, got {value}."
        raise ValueError(msg)
    return value


def _float_setting(environ: Mapping[str, str], name: str, default: float) -> float:
    """Read a positive float setting."""
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got {raw!r}."
        raise ValueError(msg) from None
    if value <= 0:
        msg = f"{name} must be > 0, got {value}."
        raise ValueError(msg)
    return value


@dataclass(frozen=True, slots=True)
class FetchConfig:
    """Settings shared by one pull run.

    Environment variables:
        IMGFETCH_DOWNLOADER: ``native`` (HTTP) or ``tool`` (helper binary). Default: native
        IMGFETCH_TOOL: Path or name of the download helper. Default: img
        IMGFETCH_MAX_WORKERS: Concurrent blob downloads per batch. Default: 8
        IMGFETCH_TIMEOUT: Per-request timeout in seconds. Default: 60
        IMGFETCH_LAYER_HANDLING: shallow, eager or lazy. Default: shallow
        IMGFETCH_CHUNK_SIZE: Streaming chunk size in bytes. Default: 1048576
    """

    downloader: Downloader = "native"
    tool_path: str = "img"
    max_workers: int = 8
    timeout: float = 60.0
    layer_handling: LayerPolicy = LayerPolicy.SHALLOW
    chunk_size: int = 1 << 20

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.downloader not in _DOWNLOADERS:
            msg = f"Invalid downloader {self.downloader!r}. Expected one of: {', '.join(_DOWNLOADERS)}."
            raise ValueError(msg)
        object.__setattr__(self, "layer_handling", LayerPolicy.parse(self.layer_handling))
        if self.max_workers <= 0:
            msg = "max_workers must be > 0."
            raise ValueError(msg)
        if self.timeout <= 0:
            msg = "timeout must be > 0."
            raise ValueError(msg)
        if self.chunk_size <= 0:
            msg = "chunk_size must be > 0."
            raise ValueError(msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FetchConfig:
        """Build a config from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        return cls(
            downloader=env.get("IMGFETCH_DOWNLOADER", "native"),  # type: ignore[arg-type]
            tool_path=env.get("IMGFETCH_TOOL", "img"),
            max_workers=_int_setting(env, "IMGFETCH_MAX_WORKERS", 8),
            timeout=_float_setting(env, "IMGFETCH_TIMEOUT", 60.0),
            layer_handling=LayerPolicy.parse(env.get("IMGFETCH_LAYER_HANDLING", "shallow")),
            chunk_size=_int_setting(env, "IMGFETCH_CHUNK_SIZE", 1 << 20),
        )
