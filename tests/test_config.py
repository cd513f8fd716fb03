"""Tests for FetchConfig."""

import pytest

from imgfetch.config import FetchConfig
from imgfetch.types import LayerPolicy


def test_defaults() -> None:
    config = FetchConfig.from_env({})
    assert config == FetchConfig()
    assert config.downloader == "native"
    assert config.tool_path == "img"
    assert config.max_workers == 8
    assert config.timeout == 60.0
    assert config.layer_handling is LayerPolicy.SHALLOW
    assert config.chunk_size == 1 << 20


def test_from_env_reads_every_setting() -> None:
    config = FetchConfig.from_env(
        {
            "IMGFETCH_DOWNLOADER": "tool",
            "IMGFETCH_TOOL": "/opt/bin/img",
            "IMGFETCH_MAX_WORKERS": "3",
            "IMGFETCH_TIMEOUT": "2.5",
            "IMGFETCH_LAYER_HANDLING": "lazy",
            "IMGFETCH_CHUNK_SIZE": "4096",
        }
    )
    assert config.downloader == "tool"
    assert config.tool_path == "/opt/bin/img"
    assert config.max_workers == 3
    assert config.timeout == 2.5
    assert config.layer_handling is LayerPolicy.LAZY
    assert config.chunk_size == 4096


def test_from_env_uses_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMGFETCH_MAX_WORKERS", "5")
    assert FetchConfig.from_env().max_workers == 5


def test_empty_values_fall_back_to_defaults() -> None:
    config = FetchConfig.from_env({"IMGFETCH_MAX_WORKERS": "", "IMGFETCH_TIMEOUT": ""})
    assert config.max_workers == 8
    assert config.timeout == 60.0


@pytest.mark.parametrize(
    ("environ", "message"),
    [
        ({"IMGFETCH_MAX_WORKERS": "many"}, "IMGFETCH_MAX_WORKERS must be an integer"),
        ({"IMGFETCH_MAX_WORKERS": "0"}, "IMGFETCH_MAX_WORKERS must be > 0"),
        ({"IMGFETCH_TIMEOUT": "soon"}, "IMGFETCH_TIMEOUT must be a number"),
        ({"IMGFETCH_TIMEOUT": "-1"}, "IMGFETCH_TIMEOUT must be > 0"),
        ({"IMGFETCH_CHUNK_SIZE": "-4"}, "IMGFETCH_CHUNK_SIZE must be > 0"),
        ({"IMGFETCH_DOWNLOADER": "curl"}, "Invalid downloader"),
        ({"IMGFETCH_LAYER_HANDLING": "deep"}, "Invalid layer handling"),
    ],
)
def test_invalid_settings_raise(environ: dict[str, str], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        FetchConfig.from_env(environ)


def test_layer_handling_accepts_strings() -> None:
    config = FetchConfig(layer_handling="eager")  # type: ignore[arg-type]
    assert config.layer_handling is LayerPolicy.EAGER
