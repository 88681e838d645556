# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/capi/graph.py
"""
Cluster API object graph rooted at a Cluster.

Nodes live in a dict keyed by (apiVersion/kind, namespace, name); edges are
adjacency lists from an owner to the objects it references. The walker
hands every (owner, machine template) pair to a visitor: the control plane
first, then each MachineDeployment in listing order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ocne.errors import OcneError
from ocne.k8s.resources import Obj, ResourceApplier, get_path, name_of, namespace_of

log = logging.getLogger("ocne")

CAPI_API_VERSION = "cluster.x-k8s.io/v1beta1"
CLUSTER_KIND = "Cluster"
MACHINE_DEPLOYMENT_KIND = "MachineDeployment"
KUBEADM_CONTROL_PLANE_KIND = "KubeadmControlPlane"
CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"

# JSON paths used by staging and patch generation
CONTROL_PLANE_VERSION = ("spec", "version")
CONTROL_PLANE_INFRASTRUCTURE_REF = ("spec", "machineTemplate", "infrastructureRef")
MACHINE_DEPLOYMENT_VERSION = ("spec", "template", "spec", "version")
MACHINE_DEPLOYMENT_INFRASTRUCTURE_REF = ("spec", "template", "spec", "infrastructureRef")
CLUSTER_CONTROL_PLANE_REF = ("spec", "controlPlaneRef")
CLUSTER_INFRASTRUCTURE_REF = ("spec", "infrastructureRef")
CLUSTER_ENDPOINT_HOST = ("spec", "controlPlaneEndpoint", "host")
CLUSTER_ENDPOINT_PORT = ("spec", "controlPlaneEndpoint", "port")
VM_TEMPLATE_NAME = ("spec", "template", "spec", "vmTemplateName")

ROLE_CLUSTER = "cluster"
ROLE_CONTROL_PLANE = "control-plane"
ROLE_INFRASTRUCTURE_CLUSTER = "infrastructure-cluster"
ROLE_MACHINE_DEPLOYMENT = "machine-deployment"
ROLE_MACHINE_TEMPLATE = "machine-template"

NodeKey = Tuple[str, str, str]


def node_key(obj: Obj) -> NodeKey:
    return (f"{obj.get('apiVersion', '')}/{obj.get('kind', '')}", namespace_of(obj), name_of(obj))


@dataclass
class Node:
    obj: Obj
    role: str

    @property
    def key(self) -> NodeKey:
        return node_key(self.obj)

    @property
    def name(self) -> str:
        return name_of(self.obj)

    @property
    def namespace(self) -> str:
        return namespace_of(self.obj)


@dataclass
class ClusterGraph:
    nodes: Dict[NodeKey, Node] = field(default_factory=dict)
    edges: Dict[NodeKey, List[NodeKey]] = field(default_factory=dict)
    root: Optional[NodeKey] = None
    control_plane: Optional[NodeKey] = None
    infrastructure_cluster: Optional[NodeKey] = None
    machine_deployments: List[NodeKey] = field(default_factory=list)

    def add(self, obj: Obj, role: str, parent: Optional[NodeKey] = None) -> NodeKey:
        key = node_key(obj)
        if key not in self.nodes:
            self.nodes[key] = Node(obj, role)
            self.edges.setdefault(key, [])
        if parent is not None:
            if parent == key or self._reaches(key, parent):
                raise OcneError(f"cycle between {parent} and {key} in cluster graph")
            children = self.edges.setdefault(parent, [])
            if key not in children:
                children.append(key)
        return key

    def _reaches(self, start: NodeKey, target: NodeKey) -> bool:
        stack = [start]
        seen = set()
        while stack:
            cur = stack.pop()
            if cur == target:
                return True
            if cur in seen:
                continue
            seen.add(cur)
            stack.extend(self.edges.get(cur, []))
        return False

    def node(self, key: Optional[NodeKey]) -> Optional[Node]:
        return self.nodes.get(key) if key is not None else None

    def children(self, key: NodeKey, role: Optional[str] = None) -> List[Node]:
        out = [self.nodes[k] for k in self.edges.get(key, [])]
        if role is not None:
            out = [n for n in out if n.role == role]
        return out

    @property
    def cluster(self) -> Optional[Node]:
        return self.node(self.root)

    def machine_template_of(self, owner: NodeKey) -> Optional[Node]:
        templates = self.children(owner, ROLE_MACHINE_TEMPLATE)
        return templates[0] if templates else None

    def walk_machine_templates(self, fn: Callable[[Node, Node, Any], None], arg: Any = None) -> None:
        owners: List[NodeKey] = []
        if self.control_plane is not None:
            owners.append(self.control_plane)
        owners.extend(self.machine_deployments)

        for owner in owners:
            mt = self.machine_template_of(owner)
            if mt is None:
                continue
            fn(self.nodes[owner], mt, arg)

    def machine_templates(self) -> List[Node]:
        return [n for n in self.nodes.values() if n.role == ROLE_MACHINE_TEMPLATE]


def _fetch_ref(applier: ResourceApplier, ref: Optional[Obj], default_ns: str, what: str) -> Obj:
    if not ref or not ref.get("name") or not ref.get("kind") or not ref.get("apiVersion"):
        raise OcneError(f"{what} reference is incomplete")
    return applier.get_by_identifier(ref["apiVersion"], ref["kind"], ref["name"], ref.get("namespace") or default_ns)


def get_cluster_graph(applier: ResourceApplier, namespace: str, name: str) -> ClusterGraph:
    graph = ClusterGraph()

    cluster = applier.get_by_identifier(CAPI_API_VERSION, CLUSTER_KIND, name, namespace)
    graph.root = graph.add(cluster, ROLE_CLUSTER)

    cp_ref = get_path(cluster, *CLUSTER_CONTROL_PLANE_REF)
    if cp_ref:
        if cp_ref.get("kind") != KUBEADM_CONTROL_PLANE_KIND:
            raise OcneError(f"control plane kind {cp_ref.get('kind')} is not supported")
        cp = _fetch_ref(applier, cp_ref, namespace, "control plane")
        graph.control_plane = graph.add(cp, ROLE_CONTROL_PLANE, graph.root)

        mt_ref = get_path(cp, *CONTROL_PLANE_INFRASTRUCTURE_REF)
        mt = _fetch_ref(applier, mt_ref, namespace, "control plane machine template")
        graph.add(mt, ROLE_MACHINE_TEMPLATE, graph.control_plane)

    infra_ref = get_path(cluster, *CLUSTER_INFRASTRUCTURE_REF)
    if infra_ref:
        infra = _fetch_ref(applier, infra_ref, namespace, "infrastructure cluster")
        graph.infrastructure_cluster = graph.add(infra, ROLE_INFRASTRUCTURE_CLUSTER, graph.root)

    mds = applier.list(
        CAPI_API_VERSION, MACHINE_DEPLOYMENT_KIND, namespace, label_selector=f"{CLUSTER_NAME_LABEL}={name}"
    )
    for md in mds:
        cluster_name = get_path(md, "spec", "clusterName")
        if cluster_name and cluster_name != name:
            continue
        md.setdefault("apiVersion", CAPI_API_VERSION)
        md.setdefault("kind", MACHINE_DEPLOYMENT_KIND)
        md_key = graph.add(md, ROLE_MACHINE_DEPLOYMENT, graph.root)
        graph.machine_deployments.append(md_key)

        mt_ref = get_path(md, *MACHINE_DEPLOYMENT_INFRASTRUCTURE_REF)
        mt = _fetch_ref(applier, mt_ref, namespace, f"MachineDeployment {name_of(md)} machine template")
        graph.add(mt, ROLE_MACHINE_TEMPLATE, md_key)

    log.debug(
        "cluster graph for %s/%s: %d nodes, %d machine deployments",
        namespace,
        name,
        len(graph.nodes),
        len(graph.machine_deployments),
    )
    return graph
