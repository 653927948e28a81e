"""Load toolrelay configuration from TOML files and the environment.

Sources, lowest priority first:
    1. Model defaults
    2. ``$XDG_CONFIG_HOME/toolrelay/config.toml`` (``~/.config`` by default)
    3. ``./toolrelay.toml``
    4. The file named by ``$TOOLRELAY_CONFIG``
    5. The file passed as ``path`` (``--config`` on the command line)
    6. ``overrides`` (command-line options)

Tables are merged key by key, so a later file only needs the keys it
changes. After validation the provider and transport identifiers are
checked, and a missing model credential is read from the environment.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from toolrelay.core.errors import ConfigError

from .schema import ToolrelayConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .schema import LLMConfig

KNOWN_PROVIDERS = ("anthropic", "openai", "ollama")
KNOWN_TRANSPORTS = ("stdio", "http", "rest", "none")

# Providers with an API key; ollama runs locally without one.
_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

# Providers whose adapter talks to a configurable endpoint.
_BASE_URL_PROVIDERS = ("openai", "ollama")


def _search_paths() -> Iterator[Path]:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(xdg) if xdg else Path.home() / ".config"
    yield config_home / "toolrelay" / "config.toml"
    yield Path.cwd() / "toolrelay.toml"


def config_files(path: str | Path | None = None) -> list[Path]:
    """Config files to merge, lowest priority first.

    Files found by search are skipped when absent. Files named by
    ``$TOOLRELAY_CONFIG`` or ``path`` must exist.

    Raises:
        ConfigError: If a named file does not exist.
    """
    files = [p for p in _search_paths() if p.is_file()]
    named = (
        ("TOOLRELAY_CONFIG", os.environ.get("TOOLRELAY_CONFIG")),
        ("Config file", str(path) if path is not None else None),
    )
    for source, value in named:
        if not value:
            continue
        candidate = Path(value)
        if not candidate.is_file():
            msg = f"{source} not found: {value}"
            raise ConfigError(msg)
        files.append(candidate)
    return files


def _read(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e


def _merge(target: dict[str, Any], layer: dict[str, Any]) -> None:
    """Fold ``layer`` into ``target``; tables merge, everything else replaces."""
    for key, value in layer.items():
        if isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _merge(target[key], value)
        else:
            target[key] = value


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    where = ".".join(str(part) for part in first["loc"])
    extra = error.error_count() - 1
    more = f" (and {extra} more)" if extra else ""
    return f"{where}: {first['msg']}{more}"


def _check_identifiers(config: ToolrelayConfig) -> None:
    llm = config.llm
    if llm.provider not in KNOWN_PROVIDERS:
        msg = (
            f"llm.provider must be one of {', '.join(KNOWN_PROVIDERS)}, "
            f"got {llm.provider!r}"
        )
        raise ConfigError(msg)
    if llm.base_url and llm.provider not in _BASE_URL_PROVIDERS:
        msg = (
            f"llm.base_url is not used by the {llm.provider} provider "
            f"(only {' and '.join(_BASE_URL_PROVIDERS)})"
        )
        raise ConfigError(msg)
    transport = config.gateway.transport
    if transport not in KNOWN_TRANSPORTS:
        msg = (
            f"gateway.transport must be one of {', '.join(KNOWN_TRANSPORTS)}, "
            f"got {transport!r}"
        )
        raise ConfigError(msg)


def _fill_api_key(llm: LLMConfig) -> None:
    if llm.api_key:
        return
    env_name = llm.api_key_env or _KEY_ENV.get(llm.provider)
    if env_name:
        llm.api_key = os.environ.get(env_name) or None


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ToolrelayConfig:
    """Build the effective configuration.

    Raises:
        ConfigError: On a missing or unreadable file, a value of the wrong
            type, or an unknown provider or transport.
    """
    merged: dict[str, Any] = {}
    for config_file in config_files(path):
        _merge(merged, _read(config_file))
    if overrides:
        _merge(merged, overrides)

    try:
        config = ToolrelayConfig.model_validate(merged)
    except ValidationError as e:
        msg = f"Invalid configuration: {_describe(e)}"
        raise ConfigError(msg) from e

    _check_identifiers(config)
    _fill_api_key(config.llm)
    return config
