# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/template.py
"""
Default Cluster API resources for an OLVM cluster.

Used when the cluster configuration carries no resource bundle of its own.
The bundle is rendered from templates/capi-olvm.yaml.j2 with the node boot
configuration embedded as ignition JSON.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError
from ocne.utils.versions import get_kubernetes_versions
from .ignition import control_plane_ignition, worker_ignition
from .resources import ca_configmap_nsn, cred_secret_nsn
from .validate import validate_cluster_config

log = logging.getLogger("ocne")

TEMPLATES_ROOT = Path(__file__).parent / "templates"
CLUSTER_TEMPLATE = "capi-olvm.yaml.j2"

CONTROL_PLANE_MEMORY = "7GB"
WORKER_MEMORY = "16GB"
VOLUME_PLUGIN_DIR = "/var/lib/kubelet/volumeplugins"


class TemplateError(ConfigInvalidError):
    pass


def _split(cidrs: str) -> List[str]:
    return [c.strip() for c in cidrs.split(",") if c.strip()]


def template_context(cc: ClusterConfig) -> Dict[str, Any]:
    olvm = cc.olvm
    cp_net = olvm.control_plane_machine.virtual_machine.network
    w_net = olvm.worker_machine.virtual_machine.network
    return {
        "cc": cc,
        "olvm": olvm,
        "namespace": olvm.namespace,
        "api_server_ip": cc.virtual_ip or cc.load_balancer,
        "kube_versions": get_kubernetes_versions(cc.kube_version),
        "image_repository": f"{cc.registry}/olcne",
        "volume_plugin_dir": VOLUME_PLUGIN_DIR,
        "pod_cidrs": _split(cc.pod_subnet),
        "service_cidrs": _split(cc.service_subnet),
        "cred_secret": cred_secret_nsn(cc),
        "ca_configmap": ca_configmap_nsn(cc),
        "control_plane_ipv4": cp_net.ipv4.addresses(),
        "control_plane_ipv6": cp_net.ipv6.addresses(),
        "worker_ipv4": w_net.ipv4.addresses(),
        "worker_ipv6": w_net.ipv6.addresses(),
        "control_plane_memory": olvm.control_plane_machine.virtual_machine.memory or CONTROL_PLANE_MEMORY,
        "worker_memory": olvm.worker_machine.virtual_machine.memory or WORKER_MEMORY,
        "control_plane_ignition": control_plane_ignition(cc).to_string(),
        "worker_ignition": worker_ignition(cc).to_string(),
    }


def render_cluster_resources(cc: ClusterConfig) -> str:
    """Validate *cc* and render the multi-document YAML bundle for it."""
    validate_cluster_config(cc)

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_ROOT)),
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    try:
        tmpl = env.get_template(CLUSTER_TEMPLATE)
    except TemplateNotFound as e:
        raise TemplateError(f"Missing template: {CLUSTER_TEMPLATE}") from e

    log.debug("rendering %s for cluster %s", CLUSTER_TEMPLATE, cc.name)
    return tmpl.render(**template_context(cc))
