# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/cache/cluster_cache.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError
from ocne.utils.versions import normalize_kubernetes_version

log = logging.getLogger("ocne")

CACHE_FILE = Path.home() / ".ocne" / "clusters.json"


class ClusterCacheEntry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: str
    kube_version: str
    kubeconfig_path: str = ""


class ClusterCache:
    """
    cluster name -> ClusterCacheEntry, stored as one JSON document.
    Read-modify-write without locking; one user at a time.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else CACHE_FILE

    def _load(self) -> Dict[str, ClusterCacheEntry]:
        if not self.path.is_file():
            return {}
        try:
            raw = json.loads(self.path.read_text() or "{}")
            return {k: ClusterCacheEntry.model_validate(v) for k, v in raw.items()}
        except (ValueError, ValidationError, AttributeError) as exc:
            raise ConfigInvalidError(f"cluster cache {self.path} is corrupt: {exc}") from exc

    def _save(self, entries: Dict[str, ClusterCacheEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {k: v.model_dump(by_alias=True) for k, v in sorted(entries.items())}
        self.path.write_text(json.dumps(data, indent=2) + "\n")

    def get(self, name: str) -> Optional[ClusterCacheEntry]:
        return self._load().get(name)

    def add(self, cc: ClusterConfig, kubeconfig_path: str) -> ClusterCacheEntry:
        entries = self._load()
        entry = ClusterCacheEntry(provider=cc.provider, kube_version=cc.kube_version, kubeconfig_path=kubeconfig_path)
        entries[cc.name] = entry
        self._save(entries)
        log.debug("cached cluster %s (%s, %s)", cc.name, cc.provider, cc.kube_version)
        return entry

    def remove(self, name: str) -> None:
        entries = self._load()
        if entries.pop(name, None) is not None:
            self._save(entries)

    def check(self, cc: ClusterConfig) -> None:
        """Refuse to reuse a cluster name with another provider or version."""
        entry = self.get(cc.name)
        if entry is None:
            return
        if entry.provider != cc.provider:
            raise ConfigInvalidError(
                f"Cluster {cc.name} already exists with provider {entry.provider}, not {cc.provider}"
            )
        if normalize_kubernetes_version(entry.kube_version) != normalize_kubernetes_version(cc.kube_version):
            raise ConfigInvalidError(
                f"Cluster {cc.name} already exists with Kubernetes version {entry.kube_version}, "
                f"not {cc.kube_version}"
            )
