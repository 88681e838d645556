# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/stage.py
"""
Prepare an OLVM cluster for an upgrade.

OLVMMachineTemplates are immutable. When the configured oVirt VM template
changes, every machine template using the old one is copied under a new
name with the new VM template, and the operator gets the kubectl patch
commands that move the control plane and MachineDeployments over.
"""
from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from ocne.capi import graph as capi
from ocne.capi.graph import ClusterGraph, Node
from ocne.capi.patches import (
    control_plane_ignition_patches,
    control_plane_ignition_update,
    control_plane_patches,
    patch_control_plane,
)
from ocne.config.models import ClusterConfig
from ocne.k8s.resources import Obj, ResourceApplier, get_path, set_path
from ocne.utils.jsonpatch import JsonPatches
from ocne.utils.naming import increment_count
from ocne.utils.versions import compare_kubernetes_versions, normalize_kubernetes_version

log = logging.getLogger("ocne")

FORCE_TEMPLATES_ENV = "OCNE_OLVM_STAGE_FORCE_TEMPLATES"

CONTROL_PLANE_HELP = (
    "To update KubeadmControlPlane {name} in {namespace}, run:\n"
    "    kubectl patch -n {namespace} kubeadmcontrolplane {name} --type=json -p='{patches}'\n"
)
MACHINE_DEPLOYMENT_HELP = (
    "To update MachineDeployment {name} in {namespace}, run:\n"
    "    kubectl patch -n {namespace} machinedeployment {name} --type=json -p='{patches}'\n"
)

# server-populated fields that must not be sent back on create
_SERVER_METADATA = ("resourceVersion", "uid", "creationTimestamp", "generation", "managedFields", "ownerReferences")


@dataclass
class TemplateGroup:
    """Machine templates that share one oVirt VM template and role."""

    vm_template_name: str
    control_plane: bool
    new_vm_template_name: str = ""
    machine_templates: List[Node] = field(default_factory=list)

    @property
    def has_update(self) -> bool:
        return bool(self.new_vm_template_name) and self.new_vm_template_name != self.vm_template_name


@dataclass
class StageResult:
    help: str = ""
    # old machine template name -> new name
    renamed: Dict[str, str] = field(default_factory=dict)
    created: List[Obj] = field(default_factory=list)
    control_plane_patched: bool = False
    minor_version_changed: bool = False


def group_machine_templates(graph: ClusterGraph, cc: ClusterConfig) -> Dict[Tuple[str, bool], TemplateGroup]:
    groups: Dict[Tuple[str, bool], TemplateGroup] = {}
    seen = set()

    def visit(owner: Node, mt: Node, _arg) -> None:
        if mt.key in seen:
            return
        seen.add(mt.key)
        is_cp = owner.role == capi.ROLE_CONTROL_PLANE
        current = get_path(mt.obj, *capi.VM_TEMPLATE_NAME) or ""
        machine = cc.olvm.control_plane_machine if is_cp else cc.olvm.worker_machine
        group = groups.setdefault(
            (current, is_cp),
            TemplateGroup(current, is_cp, new_vm_template_name=machine.vm_template_name),
        )
        group.machine_templates.append(mt)

    graph.walk_machine_templates(visit)
    return groups


def copy_machine_template(mt: Obj, vm_template_name: str) -> Obj:
    """A createable copy of *mt* with a bumped name and the given VM template."""
    out = copy.deepcopy(mt)
    out.pop("status", None)
    meta = out.setdefault("metadata", {})
    for k in _SERVER_METADATA:
        meta.pop(k, None)
    meta["name"] = increment_count(meta.get("name", ""), "-")
    set_path(out, vm_template_name, *capi.VM_TEMPLATE_NAME)
    return out


def create_machine_template_copy(applier: ResourceApplier, mt: Node, vm_template_name: str) -> Tuple[Obj, bool]:
    """
    Copy *mt* under the first free bumped name. A copy left by an earlier
    stage is reused only when it already points at *vm_template_name*.
    Returns the copy and whether it was created.
    """
    new_mt = copy_machine_template(mt.obj, vm_template_name)
    while True:
        name = new_mt["metadata"]["name"]
        if applier.create_if_not_exists(new_mt, mt.namespace):
            log.info("Created %s %s/%s", new_mt.get("kind"), mt.namespace, name)
            return new_mt, True
        existing = applier.get_by_identifier(new_mt["apiVersion"], new_mt["kind"], name, mt.namespace)
        if get_path(existing, *capi.VM_TEMPLATE_NAME) == vm_template_name:
            log.info("Reusing %s %s/%s", new_mt.get("kind"), mt.namespace, name)
            return existing, False
        log.debug("%s %s/%s uses another VM template", new_mt.get("kind"), mt.namespace, name)
        new_mt["metadata"]["name"] = increment_count(name, "-")


def _version_of(owner: Node) -> str:
    path = capi.CONTROL_PLANE_VERSION if owner.role == capi.ROLE_CONTROL_PLANE else capi.MACHINE_DEPLOYMENT_VERSION
    return get_path(owner.obj, *path) or ""


def _machine_deployment_patches(version: str, machine_template: str) -> JsonPatches:
    return (
        JsonPatches()
        .replace(list(capi.MACHINE_DEPLOYMENT_VERSION), version)
        .replace(list(capi.MACHINE_DEPLOYMENT_INFRASTRUCTURE_REF) + ["name"], machine_template)
    )


def stage_cluster(
    applier: ResourceApplier,
    graph: ClusterGraph,
    cc: ClusterConfig,
    target_version: str,
    environ: Optional[Mapping[str, str]] = None,
) -> StageResult:
    """
    Create replacement machine templates in the management cluster and
    build the patch instructions. Control plane boot configuration fixes
    are applied right away, whatever the version.
    """
    env = os.environ if environ is None else environ
    force = bool(env.get(FORCE_TEMPLATES_ENV))
    target = normalize_kubernetes_version(target_version)
    result = StageResult()

    cp = graph.node(graph.control_plane)
    ignition_patches = JsonPatches()
    current_version = target
    if cp is not None:
        current_version = get_path(cp.obj, *capi.CONTROL_PLANE_VERSION) or target
        ignition_patches = control_plane_ignition_patches(cp.obj, control_plane_ignition_update(cc))
        result.control_plane_patched = patch_control_plane(applier, cp.obj, ignition_patches)

    result.minor_version_changed = compare_kubernetes_versions(current_version, target) != 0
    log.debug("staging %s: %s -> %s", cc.name, current_version, target)

    for group in group_machine_templates(graph, cc).values():
        if not (group.has_update or force):
            continue
        vm_template = group.new_vm_template_name or group.vm_template_name
        for mt in group.machine_templates:
            new_mt, created = create_machine_template_copy(applier, mt, vm_template)
            if created:
                result.created.append(new_mt)
            result.renamed[mt.name] = new_mt["metadata"]["name"]

    messages: List[str] = []

    def emit(owner: Node, mt: Node, _arg) -> None:
        new_name = result.renamed.get(mt.name)
        version_changed = normalize_kubernetes_version(_version_of(owner) or target) != target
        if new_name is None and not version_changed:
            return
        mt_name = new_name or mt.name
        if owner.role == capi.ROLE_CONTROL_PLANE:
            patches = control_plane_patches(owner.obj, target, mt_name, ignition_patches)
            messages.append(CONTROL_PLANE_HELP.format(name=owner.name, namespace=owner.namespace, patches=patches))
        else:
            patches = _machine_deployment_patches(target, mt_name)
            messages.append(MACHINE_DEPLOYMENT_HELP.format(name=owner.name, namespace=owner.namespace, patches=patches))

    graph.walk_machine_templates(emit)
    result.help = "".join(messages)
    return result
