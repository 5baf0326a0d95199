"""
config.py

Responsibility: Load makestage configuration into a deterministic, typed model.

Sources, lowest precedence first:
- built-in defaults
- a YAML mapping file (explicit path, else $MAKESTAGE_CONFIG, else
  ~/.config/makestage/config.yaml when it exists)
- $MAKESTAGE_RECIPES for the recipes root
- explicit overrides (CLI flags)

Every other module receives a `Config` and never reads the environment itself.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from makestage.errors import ConfigError

CONFIG_ENV = "MAKESTAGE_CONFIG"
RECIPES_ENV = "MAKESTAGE_RECIPES"
DEFAULT_CONFIG_PATH = Path("~/.config/makestage/config.yaml")
DEFAULT_RECIPES_ROOT = Path("~/.makestage/recipes")


@dataclass(frozen=True)
class Config:
    """Settings shared by the catalog, the stager and the lifecycle controller."""

    recipes_root: Path = DEFAULT_RECIPES_ROOT
    make_command: str = "make"
    template_name: str = "Makefile"
    requires_target: str = "requires"
    outputs_target: str = "provide"
    manifest_name: str = "requires"
    input_stem: str = "in"

    def __post_init__(self) -> None:
        object.__setattr__(self, "recipes_root", Path(self.recipes_root).expanduser())


_KEYS = {f.name for f in fields(Config)}


def _coerce(data: dict[str, Any], origin: str) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        if name not in _KEYS:
            raise ConfigError(f"{origin}: unknown option `{key}`")
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            raise ConfigError(f"{origin}: `{key}` must not be empty")
        out[name] = text
    return out


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file does not exist: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping/object at the top level: {path}")
    return _coerce(data, str(path))


def _default_config_file() -> Path | None:
    env_path = os.environ.get(CONFIG_ENV, "").strip()
    if env_path:
        return Path(env_path).expanduser()
    candidate = DEFAULT_CONFIG_PATH.expanduser()
    return candidate if candidate.exists() else None


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Config:
    """
    Build a `Config` from defaults, an optional YAML file, the environment and overrides.

    `overrides` values of None are ignored so argparse namespaces can be passed through.
    """
    config_file = Path(path).expanduser() if path is not None else _default_config_file()

    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(_read_config_file(config_file))

    recipes_env = os.environ.get(RECIPES_ENV, "").strip()
    if recipes_env:
        values["recipes_root"] = recipes_env

    if overrides:
        values.update(_coerce(overrides, "overrides"))

    return replace(Config(), **values)
