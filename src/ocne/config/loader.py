# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/config/loader.py

import logging
import os
import yaml
from pathlib import Path

from pydantic import ValidationError

from ocne.errors import ConfigInvalidError
from .models import ClusterConfig, Config

log = logging.getLogger("ocne")

DEFAULTS_FILE = Path.home() / ".ocne" / "defaults.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_defaults_file() -> Path | None:
    """
    Locate the tool-wide defaults using this priority:

    1. OCNE_DEFAULTS environment variable (explicit override)
    2. ~/.ocne/defaults.yaml
    """
    env = os.environ.get("OCNE_DEFAULTS")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("OCNE_DEFAULTS=%s does not exist, skipping", env)
        return None

    if DEFAULTS_FILE.is_file():
        return DEFAULTS_FILE
    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigInvalidError(f"{path} does not contain a YAML mapping")
    return data


def load_defaults() -> Config:
    path = _find_defaults_file()
    if path is None:
        return Config()
    try:
        return Config.model_validate(_load_yaml(path))
    except ValidationError as exc:
        raise ConfigInvalidError(f"invalid defaults in {path}: {exc}") from exc


def load_config(path: str | Path | None = None, **overrides) -> ClusterConfig:
    """
    Load and validate a cluster configuration.

    The defaults file (if any) is merged underneath the cluster file, then
    keyword *overrides* (CLI flags, already in YAML key form) on top.
    ``${ENV_VAR}`` placeholders are expanded at load time.
    """
    data: dict = {}

    defaults_path = _find_defaults_file()
    if defaults_path:
        log.debug("Merging defaults from %s", defaults_path)
        _deep_merge(data, _load_yaml(defaults_path))

    if path is not None:
        path = Path(path)
        _deep_merge(data, _load_yaml(path))
        data.setdefault("directory", str(path.resolve().parent))
    else:
        data.setdefault("directory", os.getcwd())

    _deep_merge(data, overrides)

    try:
        return ClusterConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigInvalidError(f"invalid cluster configuration: {exc}") from exc


def read_cluster_definition(cc: ClusterConfig) -> tuple[str, bool]:
    """
    Returns (resources, from_template). Exactly one of clusterDefinition and
    clusterDefinitionInline may be set; neither means the built-in template.
    """
    if cc.cluster_definition and cc.cluster_definition_inline:
        raise ConfigInvalidError("cluster configuration has file-based and inline resources")
    if cc.cluster_definition_inline:
        return cc.cluster_definition_inline, False
    if not cc.cluster_definition:
        return "", True

    p = Path(cc.cluster_definition).expanduser()
    if not p.is_absolute():
        p = (Path(cc.working_directory or os.getcwd()) / p).resolve()
    try:
        return p.read_text(), False
    except OSError as exc:
        raise ConfigInvalidError(f"cannot read cluster definition {p}: {exc}") from exc
