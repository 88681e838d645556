# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/capi/patches.py
"""
Patches for KubeadmControlPlane objects.

Fixes to the control plane boot configuration (refreshed keepalived and
nginx files, dropped polkit rules) ship as an IgnitionUpdate that is turned
into JSON patches against the ignition string the object carries.
"""
from __future__ import annotations

import logging
from typing import Optional

from ocne.config.models import ClusterConfig
from ocne.ignition import library
from ocne.ignition.update import IgnitionUpdate, update_ignition
from ocne.k8s.resources import Obj, ResourceApplier, name_of, namespace_of
from ocne.utils.jsonpatch import JsonPatches
from .graph import CONTROL_PLANE_INFRASTRUCTURE_REF, CONTROL_PLANE_VERSION

log = logging.getLogger("ocne")

KCP_IGNITION_PATH = ("spec", "kubeadmConfigSpec", "ignition", "containerLinuxConfig", "additionalConfig")

POLKIT_RULES_PATH = "/etc/polkit-1/rules.d/50-ocne.rules"


def control_plane_ignition_update(cc: ClusterConfig) -> IgnitionUpdate:
    update = IgnitionUpdate(remove_files=[POLKIT_RULES_PATH])
    if cc.virtual_ip:
        update.add_files = library.virtual_ip_files(
            cc.kube_api_server_bind_port,
            cc.kube_api_server_bind_port_alt,
            cc.virtual_ip,
            cc.olvm.control_plane_machine.virtual_machine.network.interface,
        )
    return update


def control_plane_ignition_patches(kcp: Obj, update: IgnitionUpdate) -> JsonPatches:
    if update.is_empty():
        return JsonPatches()
    return update_ignition(kcp, update, *KCP_IGNITION_PATH)


def control_plane_patches(
    kcp: Obj,
    kube_version: str,
    machine_template: str,
    ignition_patches: Optional[JsonPatches] = None,
) -> JsonPatches:
    """Version bump, new machine template and any ignition fixes, in that order."""
    patches = (
        JsonPatches()
        .replace(list(CONTROL_PLANE_VERSION), kube_version)
        .replace(list(CONTROL_PLANE_INFRASTRUCTURE_REF) + ["name"], machine_template)
    )
    if ignition_patches is not None:
        patches.extend(ignition_patches)
    return patches


def patch_control_plane(applier: ResourceApplier, kcp: Obj, patches: JsonPatches) -> bool:
    """Returns False when there was nothing to apply."""
    if not len(patches):
        log.debug("KubeadmControlPlane %s/%s needs no patches", namespace_of(kcp), name_of(kcp))
        return False
    log.info("Patching KubeadmControlPlane %s in %s", name_of(kcp), namespace_of(kcp))
    applier.json_patch(kcp["apiVersion"], kcp["kind"], name_of(kcp), namespace_of(kcp), patches)
    return True
