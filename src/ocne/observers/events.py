# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # management/workload/image
    context: Optional[str]  # kubeconfig or endpoint the event refers to

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Management cluster
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ManagementClusterReady(BaseEvent):
    kubeconfig: str
    ephemeral: bool

@dataclass(frozen=True)
class ManagementClusterStopped(BaseEvent):
    name: str


# ---------------------------------------------------------------------
# Cluster API controllers
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ControllersInstalled(BaseEvent):
    cluster_name: str
    releases: List[str]

@dataclass(frozen=True)
class ControllersReady(BaseEvent):
    cluster_name: str

@dataclass(frozen=True)
class ControllersFailed(BaseEvent):
    cluster_name: str
    error: str


# ---------------------------------------------------------------------
# Cluster resources
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ResourcesApplied(BaseEvent):
    cluster_name: str
    created: int
    skipped: int

@dataclass(frozen=True)
class WorkloadKubeconfigReady(BaseEvent):
    cluster_name: str
    path: str

@dataclass(frozen=True)
class ClusterMoved(BaseEvent):
    cluster_name: str
    namespace: str
    source: str
    target: str

@dataclass(frozen=True)
class ClusterStaged(BaseEvent):
    cluster_name: str
    version: str
    templates_created: int
    changed: bool

@dataclass(frozen=True)
class ClusterDeleted(BaseEvent):
    cluster_name: str
    namespace: str


# ---------------------------------------------------------------------
# Applications (Helm)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ApplicationInstalled(BaseEvent):
    name: str
    namespace: str
    release: str
    attempts: int

@dataclass(frozen=True)
class ApplicationSkipped(BaseEvent):
    name: str
    namespace: str
    release: str

@dataclass(frozen=True)
class ApplicationFailed(BaseEvent):
    name: str
    error: str


# ---------------------------------------------------------------------
# Boot image
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ImageUploaded(BaseEvent):
    disk_name: str
    disk_id: str
    storage_domain: str


# ---------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LifecycleSummary(BaseEvent):
    cluster_name: str
    operation: str       # start/post-start/stage/delete
    status: str          # "OK" or "FAILED"
    error: Optional[str] = None
