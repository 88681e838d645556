# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/utils/versions.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple

from ocne.errors import ConfigInvalidError

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?(?:[-+].*)?$")


def parse_kubernetes_version(version: str) -> Tuple[int, int, int]:
    m = _VERSION_RE.match(version.strip())
    if not m:
        raise ConfigInvalidError(f"{version!r} is not a valid Kubernetes version")
    major, minor, patch = m.groups()
    return int(major), int(minor), int(patch or 0)


def normalize_kubernetes_version(version: str) -> str:
    """1.30 -> v1.30.0, v1.30.3 -> v1.30.3"""
    major, minor, patch = parse_kubernetes_version(version)
    return f"v{major}.{minor}.{patch}"


def compare_kubernetes_versions(a: str, b: str) -> int:
    """Compare major.minor only. Returns -1, 0 or 1."""
    left = parse_kubernetes_version(a)[:2]
    right = parse_kubernetes_version(b)[:2]
    return (left > right) - (left < right)


@dataclass(frozen=True)
class KubernetesVersions:
    kubernetes: str
    pause: str
    etcd: str
    coredns: str


_KUBERNETES_VERSIONS = {
    "1.26.6": KubernetesVersions("1.26.6", "3.9", "3.5.6", "v1.9.3-4"),
    "1.27.12": KubernetesVersions("1.27.12", "3.9", "3.5.10", "v1.10.1"),
    "1.28.8": KubernetesVersions("1.28.8", "3.9", "3.5.10", "v1.10.1-1"),
    "1.29.3": KubernetesVersions("1.29.3", "3.9", "3.5.10", "v1.11.1"),
    "1.30.3": KubernetesVersions("1.30.3", "3.9", "3.5.12", "v1.11.1"),
    "1.31.0": KubernetesVersions("1.31.0", "3.10", "3.5.15", "current"),
    "1.32.0": KubernetesVersions("1.32.0", "3.10", "3.5.15", "current"),
}
# major.minor resolves to the newest known patch release
for _full in list(_KUBERNETES_VERSIONS):
    _KUBERNETES_VERSIONS[_full.rsplit(".", 1)[0]] = _KUBERNETES_VERSIONS[_full]


def get_kubernetes_versions(version: str) -> KubernetesVersions:
    """
    Component image tags for a Kubernetes release. Accepts "1.30",
    "1.30.3" and "v1.30.3".
    """
    key = version.strip().lstrip("v")
    if key in _KUBERNETES_VERSIONS:
        return _KUBERNETES_VERSIONS[key]
    major, minor, _ = parse_kubernetes_version(version)
    found = _KUBERNETES_VERSIONS.get(f"{major}.{minor}")
    if found is None:
        raise ConfigInvalidError(f"No Kubernetes version available for {version}")
    return found
