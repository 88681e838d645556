# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ignition/kubeadm.py
"""
Compact kubeadm / kube-proxy configuration documents.

Hand-built dicts keep the YAML small enough to embed in an ignition file;
only non-empty fields are emitted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from ocne.config.models import Proxy
from ocne.utils.versions import get_kubernetes_versions

KUBEADM_API_VERSION = "kubeadm.k8s.io/v1beta3"
KUBE_PROXY_API_VERSION = "kubeproxy.config.k8s.io/v1alpha1"
IMAGE_REPOSITORY = "container-registry.oracle.com/olcne"
TLS_MIN_VERSION = "VersionTLS12"
VOLUME_PLUGIN_DIR = "/var/lib/kubelet/volumeplugins"
PATCHES_DIR = "/etc/ocne/ock"
NODE_IP = "NODE_IP"

ROLE_CONTROL_PLANE = "control-plane"
ROLE_WORKER = "worker"


@dataclass
class ClusterInit:
    kube_version: str
    kube_api_server_ip: str
    kube_pki_cert: str = ""
    kube_pki_key: str = ""
    os_tag: str = ""
    os_registry: str = ""
    image_registry: str = ""
    kube_api_bind_port: int = 6443
    kube_api_bind_port_alt: int = 6444
    internal_lb: bool = False
    proxy: Proxy = field(default_factory=Proxy)
    kube_api_extra_sans: List[str] = field(default_factory=list)
    service_subnet: str = "10.96.0.0/12"
    pod_subnet: str = "10.244.0.0/16"
    expecting_worker_nodes: bool = True
    proxy_mode: str = "iptables"
    net_interface: str = ""
    upload_certificate_key: str = ""
    tls_cipher_suites: str = ""


@dataclass
class ClusterJoin:
    role: str
    kube_api_server_ip: str
    join_token: str
    kube_pki_cert_hashes: List[str] = field(default_factory=list)
    os_tag: str = ""
    os_registry: str = ""
    image_registry: str = ""
    kube_api_bind_port: int = 6443
    kube_api_bind_port_alt: int = 6444
    internal_lb: bool = False
    proxy: Proxy = field(default_factory=Proxy)
    proxy_mode: str = "iptables"
    net_interface: str = ""
    upload_certificate_key: str = ""
    tls_cipher_suites: str = ""


def _prune(d: Any) -> Any:
    """Drop empty strings, None and empty containers, recursively."""
    if isinstance(d, dict):
        out = {}
        for k, v in d.items():
            v = _prune(v)
            if v in ("", None) or (isinstance(v, (dict, list)) and not v and k != "taints"):
                continue
            out[k] = v
        return out
    if isinstance(d, list):
        return [_prune(x) for x in d]
    return d


def _dump(doc: Dict[str, Any]) -> str:
    return yaml.safe_dump(_prune(doc), sort_keys=False, default_flow_style=False)


def _kubelet_args(tls_cipher_suites: str, tls_min: bool) -> Dict[str, Any]:
    return {
        "node-ip": NODE_IP,
        "tls-min-version": TLS_MIN_VERSION if tls_min else "",
        "tls-cipher-suites": tls_cipher_suites,
        "address": "0.0.0.0",
        "authorization-mode": "AlwaysAllow",
        "volume-plugin-dir": VOLUME_PLUGIN_DIR,
    }


def kubeadm_init(ci: ClusterInit) -> Dict[str, Any]:
    bind_port = ci.kube_api_bind_port_alt if ci.internal_lb else ci.kube_api_bind_port
    registration: Dict[str, Any] = {"kubeletExtraArgs": _kubelet_args(ci.tls_cipher_suites, True)}
    if not ci.expecting_worker_nodes:
        # an explicit empty list keeps kubeadm from tainting the only node
        registration["taints"] = []
    return {
        "apiVersion": KUBEADM_API_VERSION,
        "kind": "InitConfiguration",
        "localAPIEndpoint": {"advertiseAddress": NODE_IP, "bindPort": bind_port},
        "nodeRegistration": registration,
        "certificateKey": ci.upload_certificate_key,
        "skipPhases": ["addon/kube-proxy", "preflight"],
        "patches": {"directory": PATCHES_DIR},
    }


def cluster_configuration(ci: ClusterInit) -> Dict[str, Any]:
    kv = get_kubernetes_versions(ci.kube_version)
    tls = {"tls-min-version": TLS_MIN_VERSION, "tls-cipher-suites": ci.tls_cipher_suites}
    return {
        "apiVersion": KUBEADM_API_VERSION,
        "kind": "ClusterConfiguration",
        "apiServer": {"certSANs": list(ci.kube_api_extra_sans), "extraArgs": dict(tls)},
        "controllerManager": {"extraArgs": dict(tls)},
        "scheduler": {"extraArgs": dict(tls)},
        "networking": {"serviceSubnet": ci.service_subnet, "podSubnet": ci.pod_subnet},
        "imageRepository": IMAGE_REPOSITORY,
        "kubernetesVersion": kv.kubernetes,
        "controlPlaneEndpoint": f"{ci.kube_api_server_ip}:{ci.kube_api_bind_port}",
        "etcd": {
            "local": {
                "imageRepository": IMAGE_REPOSITORY,
                "imageTag": kv.etcd,
                "extraArgs": {
                    "listen-metrics-urls": "http://0.0.0.0:2381",
                    "cipher-suites": ci.tls_cipher_suites,
                },
            }
        },
        "dns": {"imageRepository": IMAGE_REPOSITORY, "imageTag": kv.coredns},
    }


def kubeadm_join(cj: ClusterJoin) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "apiVersion": KUBEADM_API_VERSION,
        "kind": "JoinConfiguration",
        "nodeRegistration": {"kubeletExtraArgs": _kubelet_args(cj.tls_cipher_suites, False)},
        "discovery": {
            "bootstrapToken": {
                "apiServerEndpoint": f"{cj.kube_api_server_ip}:{cj.kube_api_bind_port}",
                "token": cj.join_token,
                "caCertHashes": list(cj.kube_pki_cert_hashes),
            }
        },
        "patches": {"directory": PATCHES_DIR},
    }
    if cj.role == ROLE_CONTROL_PLANE:
        bind_port = cj.kube_api_bind_port_alt if cj.internal_lb else cj.kube_api_bind_port
        doc["controlPlane"] = {
            "localAPIEndpoint": {"advertiseAddress": NODE_IP, "bindPort": bind_port},
            "certificateKey": cj.upload_certificate_key,
        }
    return doc


def kube_proxy_configuration(mode: str) -> Dict[str, Any]:
    return {
        "apiVersion": KUBE_PROXY_API_VERSION,
        "kind": "KubeProxyConfiguration",
        "mode": mode,
        "metricsBindAddress": "0.0.0.0:10249",
    }


def kubeadm_init_yaml(ci: ClusterInit) -> str:
    return "---\n".join(
        [_dump(kubeadm_init(ci)), _dump(cluster_configuration(ci)), _dump(kube_proxy_configuration(ci.proxy_mode))]
    )


def kubeadm_join_yaml(cj: ClusterJoin, proxy_mode: Optional[str] = None) -> str:
    docs = [_dump(kubeadm_join(cj))]
    if cj.role == ROLE_CONTROL_PLANE:
        docs.append(_dump(kube_proxy_configuration(proxy_mode or cj.proxy_mode)))
    return "---\n".join(docs)
