# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/validate.py
from __future__ import annotations

from ocne.config.models import ClusterConfig, OlvmMachine
from ocne.errors import ConfigInvalidError

REQUIRED = "The configuration parameter %s is required"


def _require(value: str, path: str) -> None:
    if not value:
        raise ConfigInvalidError(REQUIRED % path)


def _validate_machine(machine: OlvmMachine, base: str) -> None:
    _require(machine.olvm_ovirt_cluster_name, f"{base}.olvmOvirtClusterName")
    _require(machine.vm_template_name, f"{base}.vmTemplateName")
    _require(machine.olvm_network.network_name, f"{base}.olvmNetwork.networkName")
    _require(machine.olvm_network.vnic_profile_name, f"{base}.olvmNetwork.vnicProfileName")
    ipv4 = machine.virtual_machine.network.ipv4
    _require(ipv4.ip_addresses, f"{base}.virtualMachine.network.ipv4.ipAddresses")
    _require(ipv4.subnet, f"{base}.virtualMachine.network.ipv4.subnet")


def apply_node_defaults(cc: ClusterConfig) -> ClusterConfig:
    """
    Cluster API will not run a cluster without workers or without a
    control plane, so zero means one of each.
    """
    if cc.worker_nodes == 0:
        cc.worker_nodes = 1
    if cc.control_plane_nodes == 0:
        cc.control_plane_nodes = 1
    return cc


def validate_cluster_config(cc: ClusterConfig) -> ClusterConfig:
    """Pre-flight checks for the OLVM provider. Nothing is contacted."""
    apply_node_defaults(cc)

    if cc.control_plane_nodes % 2 == 0:
        raise ConfigInvalidError("the number of control plane nodes must be odd")
    if cc.cluster_definition and cc.cluster_definition_inline:
        raise ConfigInvalidError("cluster configuration has file-based and inline resources")

    provider = cc.olvm
    _require(provider.datacenter_name, "providers.olvm.olvmDatacenterName")
    _require(provider.olvm_api_server.server_url, "providers.olvm.olvmOvirtAPIServer.serverURL")
    _validate_machine(provider.control_plane_machine, "providers.olvm.controlPlaneMachine")
    _validate_machine(provider.worker_machine, "providers.olvm.workerMachine")

    api = provider.olvm_api_server
    if api.server_ca and api.server_ca_path:
        raise ConfigInvalidError("The OLVM Provider cannot specify both ovirtApiCA and ovirtApiCAPath")
    return cc
