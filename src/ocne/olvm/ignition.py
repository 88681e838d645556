# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/ignition.py
"""
Boot configuration for OLVM machines.

Cluster API brings its own kubeadm.service, so these documents only prepare
the host: container runtime, proxy, the ocne user, the update service and,
on control plane nodes with a virtual IP, keepalived and nginx.
"""
from __future__ import annotations

import logging
from pathlib import Path

from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError
from ocne.ignition import library
from ocne.ignition.document import Dropin, File, Ignition, Unit, merge

log = logging.getLogger("ocne")

PRE_KUBEADM_DROPIN = """[Unit]
Before=kubeadm.service
"""

POST_KUBEADM_DROPIN = """[Unit]
After=kubeadm.service
"""

ENABLE_SERVICES_DROPIN = """[Service]
ExecStartPre=/bin/bash -c "/etc/ocne/enableServices.sh &"
"""
ENABLE_SERVICES_SCRIPT_PATH = "/etc/ocne/enableServices.sh"
ENABLE_SERVICES_SCRIPT = """#! /bin/bash
set -x
set -e
systemctl enable --now crio.service
systemctl enable kubelet.service
systemctl enable --now kubeadm.service
"""

COPY_KUBECONFIG_DROPIN = """[Service]
ExecStartPre=/bin/bash -c "{{ script }}"
"""
COPY_KUBECONFIG_SCRIPT = """#! /bin/bash
set -x
set -e
while [ ! -f "/etc/kubernetes/kubelet.conf" ]; do
   echo "Waiting for /etc/kubernetes/kubelet.conf to exist"
   sleep 2
done

cp /etc/kubernetes/kubelet.conf {{ base }}/kubeconfig

if [[ $(grep "/var/lib/kubelet/pki/kubelet-client-current.pem" "{{ base }}/kubeconfig") ]]; then
	while [ ! -f "/var/lib/kubelet/pki/kubelet-client-current.pem" ]; do
		echo "Waiting for /var/lib/kubelet/pki/kubelet-client-current.pem to exist"
		sleep 2
	done
	cp /var/lib/kubelet/pki/kubelet-client-current.pem {{ base }}/kubelet-client-current.pem
	chown {{ owner }} {{ base }}/kubelet-client-current.pem
	chmod 400 {{ base }}/kubelet-client-current.pem
	sed -i 's|/var/lib/kubelet/pki/kubelet-client-current.pem|{{ base }}/kubelet-client-current.pem|g' {{ base }}/kubeconfig
fi

chown {{ owner }} {{ base }}/kubeconfig
chmod 400 {{ base }}/kubeconfig
"""
KEEPALIVED_COPY_SCRIPT_PATH = "/etc/ocne/keepalived-copy-kubeconfig.sh"
NGINX_COPY_SCRIPT_PATH = "/etc/ocne/nginx-copy-kubeconfig.sh"

# presets in /etc override 20-ignition.preset, which does not honour
# the disables ignition asks for
PRESET_PATH_ETC = "/etc/systemd/system-preset/10-ocne.preset"
PRESET_PATH_LIB = "/etc/systemd/system-preset/80-ocne.preset"
PRESET_DATA = """disable ocne.service
disable kubeadm.service
disable crio.service
disable kubelet.service
enable keepalived.service
enable ocne-nginx.service
enable ocne-image-cleanup.service
enable ocne-disable-ignition.service
"""

# the provider injects instance metadata from this address
INSTANCE_METADATA = "169.254.169.254"


def _copy_kubeconfig(ign: Ignition, unit: str, script_path: str, base: str, owner: str) -> Ignition:
    ign.add_file(File(script_path, library.render(COPY_KUBECONFIG_SCRIPT, base=base, owner=owner), mode=0o555))
    ign.add_unit(
        Unit(
            unit,
            enabled=True,
            dropins=[
                Dropin("post-kubeadm.conf", POST_KUBEADM_DROPIN),
                Dropin("copy-kubeconfig.conf", library.render(COPY_KUBECONFIG_DROPIN, script=script_path)),
            ],
        )
    )
    return ign


def _extra(cc: ClusterConfig) -> Ignition:
    ign = Ignition()
    if cc.extra_ignition:
        p = Path(cc.extra_ignition).expanduser()
        if not p.is_absolute() and cc.working_directory:
            p = Path(cc.working_directory) / p
        try:
            ign = merge(ign, Ignition.from_bytes(p.read_text()))
        except OSError as exc:
            raise ConfigInvalidError(f"cannot read extra ignition {p}: {exc}") from exc
    if cc.extra_ignition_inline:
        ign = merge(ign, Ignition.from_bytes(cc.extra_ignition_inline))
    return ign


def node_ignition(cc: ClusterConfig, internal_lb: bool) -> Ignition:
    """Boot configuration for one machine role. *internal_lb* is set for the control plane only."""
    ign = Ignition()
    ign.add_unit(Unit(library.OCNE_SERVICE, enabled=False))
    ign.add_file(File(PRESET_PATH_ETC, PRESET_DATA, mode=0o555))
    ign.add_file(File(PRESET_PATH_LIB, PRESET_DATA, mode=0o555))
    ign.add_file(library.update_service_file(cc.os_registry, cc.os_tag))
    ign.add_file(File(ENABLE_SERVICES_SCRIPT_PATH, ENABLE_SERVICES_SCRIPT, mode=0o555))
    ign.add_unit(
        Unit(
            library.OCNE_UPDATE_SERVICE,
            enabled=True,
            dropins=[
                Dropin("pre-kubeadm.conf", PRE_KUBEADM_DROPIN),
                Dropin("enable-services.conf", ENABLE_SERVICES_DROPIN),
            ],
        )
    )

    ign = merge(ign, library.container_configuration(cc.registry))
    ign = merge(ign, library.proxy(cc.proxy, cc.service_subnet, cc.pod_subnet, INSTANCE_METADATA))
    ign = merge(ign, library.ocne_user(cc.ssh_public_key, cc.ssh_public_key_path, cc.password))

    if internal_lb:
        ign = _copy_kubeconfig(
            ign, library.KEEPALIVED_SERVICE, KEEPALIVED_COPY_SCRIPT_PATH,
            "/etc/keepalived", f"{library.KEEPALIVED_USER}:{library.KEEPALIVED_USER}",
        )
        ign = _copy_kubeconfig(
            ign, library.NGINX_SERVICE, NGINX_COPY_SCRIPT_PATH,
            "/etc/ocne/nginx", f"{library.NGINX_USER}:{library.NGINX_USER}",
        )
        ign = library.ignition_for_virtual_ip(
            ign,
            cc.kube_api_server_bind_port,
            cc.kube_api_server_bind_port_alt,
            cc.virtual_ip,
            cc.proxy,
            cc.olvm.control_plane_machine.virtual_machine.network.interface,
        )

    return merge(ign, _extra(cc))


def control_plane_ignition(cc: ClusterConfig) -> Ignition:
    return node_ignition(cc, internal_lb=bool(cc.virtual_ip))


def worker_ignition(cc: ClusterConfig) -> Ignition:
    return node_ignition(cc, internal_lb=False)
