"""
Settings Loader (``stock_config.loader``).

Responsibility
--------------
Read a YAML settings file, apply environment overrides, and build a
``LedgerSettings``.  Callers go through ``stock_config.get_active_settings``;
this module is its implementation.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import LedgerSettings
from stock_kernel.exceptions import ConfigurationError

ENV_DATABASE_URL = "STOCK_LEDGER_DATABASE_URL"
ENV_CONFIG_PATH = "STOCK_LEDGER_CONFIG"

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from a mapping, rejecting unknown keys."""
    section = data.get("stock_ledger", data)
    unknown = set(section) - LedgerSettings.field_names()
    if unknown:
        raise ConfigurationError(
            ", ".join(sorted(unknown)), "unknown setting"
        )
    try:
        return LedgerSettings(**section)
    except TypeError as exc:
        raise ConfigurationError("stock_ledger", str(exc)) from exc


def apply_env_overrides(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    merged = dict(data.get("stock_ledger", data))
    if env.get(ENV_DATABASE_URL):
        merged["database_url"] = env[ENV_DATABASE_URL]
    return merged


def resolve_config_path(
    path: Path | None,
    environ: Mapping[str, str] | None = None,
) -> Path:
    env = os.environ if environ is None else environ
    if path is not None:
        return Path(path)
    if env.get(ENV_CONFIG_PATH):
        return Path(env[ENV_CONFIG_PATH])
    return DEFAULTS_PATH


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical settings, identical hash."""
    canonical = json.dumps(dict(data), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
