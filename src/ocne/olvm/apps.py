# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/apps.py
"""
Helm releases installed by the OLVM driver.

capi_applications() is the controller stack for a management cluster and
workload_applications() is what a freshly started workload cluster gets.
Both lists are in install order.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ocne.config.models import INTERNAL_CATALOG, Application, ClusterConfig, OlvmProvider
from ocne.install.applications import ApplicationDescription
from ocne.ovirt.credentials import Credentials
from .resources import CA_KEY, create_required_resources, get_ca

log = logging.getLogger("ocne")

# name, namespace, release, version
CERT_MANAGER = ("cert-manager", "cert-manager", "cert-manager", "")
CORE_CAPI = ("core-capi", "capi-system", "core-capi", "1.9.4")
OLVM_CAPI = ("olvm-capi", "cluster-api-provider-olvm", "olvm-capi", "")
BOOTSTRAP_CAPI = ("bootstrap-capi", "capi-kubeadm-bootstrap-system", "bootstrap-capi", "1.9.4")
CONTROL_PLANE_CAPI = ("control-plane-capi", "capi-kubeadm-control-plane-system", "control-plane-capi", "1.9.4")

FLANNEL = ("flannel", "kube-flannel", "flannel", "0.22.3")
UI = ("ui", "ocne-system", "ui", "")
CATALOG = ("ocne-catalog", "ocne-system", "ocne-catalog", "2.0.0")
OVIRT_CSI = ("ovirt-csi-driver", "", "ovirt-csi-driver", "")

# controller Deployments, by namespace
CORE_CAPI_DEPLOYMENT = "core-capi-controller-manager"
BOOTSTRAP_CAPI_DEPLOYMENT = "bootstrap-capi-controller-manager"
CONTROL_PLANE_CAPI_DEPLOYMENT = "control-plane-capi-controller-manager"
OLVM_CAPI_DEPLOYMENT = "olvm-capi-operator"

CONTROLLERS = [
    ("Waiting for Core Cluster API Controllers", CORE_CAPI[1], CORE_CAPI_DEPLOYMENT),
    ("Waiting for Kubeadm Bootstrap Cluster API Controllers", BOOTSTRAP_CAPI[1], BOOTSTRAP_CAPI_DEPLOYMENT),
    ("Waiting for Kubeadm Control Plane Cluster API Controllers", CONTROL_PLANE_CAPI[1], CONTROL_PLANE_CAPI_DEPLOYMENT),
    ("Waiting for Olvm Cluster API Controllers", OLVM_CAPI[1], OLVM_CAPI_DEPLOYMENT),
]

CSI_USERNAME_KEY = "ovirt_username"
CSI_PASSWORD_KEY = "ovirt_password"
CSI_URL_KEY = "ovirt_url"


def _app(spec, config: Optional[Dict[str, Any]] = None, namespace: str = "") -> Application:
    name, ns, release, version = spec
    return Application(
        name=name,
        namespace=namespace or ns,
        release=release,
        version=version,
        catalog=INTERNAL_CATALOG,
        config=config,
    )


def proxy_values(cc: ClusterConfig) -> Dict[str, str]:
    p = cc.olvm.proxy
    return {"httpsProxy": p.https_proxy, "httpProxy": p.http_proxy, "noProxy": p.no_proxy}


def capi_applications(
    cc: ClusterConfig,
    kube,
    environ: Optional[Mapping[str, str]] = None,
) -> List[ApplicationDescription]:
    """cert-manager, core CAPI, the OLVM provider, kubeadm bootstrap and control plane."""
    proxy = {"proxy": proxy_values(cc)}
    return [
        ApplicationDescription(_app(CERT_MANAGER)),
        ApplicationDescription(_app(CORE_CAPI, dict(proxy))),
        ApplicationDescription(
            _app(OLVM_CAPI, dict(proxy)),
            pre_install=lambda: create_required_resources(kube, cc, environ),
        ),
        ApplicationDescription(_app(BOOTSTRAP_CAPI, dict(proxy))),
        ApplicationDescription(_app(CONTROL_PLANE_CAPI, dict(proxy))),
    ]


def _ensure(d: Dict[str, Any], *path: str) -> Dict[str, Any]:
    for p in path:
        d = d.setdefault(p, {})
    return d


def csi_overrides(provider: OlvmProvider) -> Dict[str, Any]:
    """
    Values for the ovirt-csi-driver chart. Only settings the user gave are
    emitted so the chart defaults stay in charge of the rest:

        ovirt: {caProvided, caConfigMapName, secretName}
        driver: {name}
        csiController: {ovirtController: {name}}
        csiNode: {ovirtNode: {name}}
    """
    csi = provider.csi_driver
    ov: Dict[str, Any] = {}
    if csi.ca_provided is not None:
        _ensure(ov, "ovirt")["caProvided"] = csi.ca_provided
    if csi.config_map_name:
        _ensure(ov, "ovirt")["caConfigMapName"] = csi.config_map_name
    if csi.controller_plugin_name:
        _ensure(ov, "csiController", "ovirtController")["name"] = csi.controller_plugin_name
    if csi.csi_driver_name:
        _ensure(ov, "driver")["name"] = csi.csi_driver_name
    if csi.node_plugin_name:
        _ensure(ov, "csiNode", "ovirtNode")["name"] = csi.node_plugin_name
    if csi.secret_name:
        _ensure(ov, "ovirt")["secretName"] = csi.secret_name
    return ov


def csi_application(
    cc: ClusterConfig,
    kube,
    environ: Optional[Mapping[str, str]] = None,
) -> ApplicationDescription:
    csi = cc.olvm.csi_driver
    namespace = csi.namespace
    creds = Credentials.from_env(environ)
    url = cc.olvm.olvm_api_server.server_url.rstrip("/") + "/api"

    def pre_install() -> None:
        kube.apply_secret(
            namespace,
            csi.secret_name,
            {CSI_USERNAME_KEY: creds.username, CSI_PASSWORD_KEY: creds.password, CSI_URL_KEY: url},
        )
        kube.apply_configmap(namespace, csi.config_map_name, {CA_KEY: get_ca(cc.olvm, cc.working_directory)})

    return ApplicationDescription(_app(OVIRT_CSI, csi_overrides(cc.olvm), namespace=namespace), pre_install=pre_install)


def flannel_application(cc: ClusterConfig, interfaces: List[str]) -> ApplicationDescription:
    args = ["--ip-masq", "--kube-subnet-mgr"] + [f"--iface={i}" for i in interfaces]
    return ApplicationDescription(
        _app(FLANNEL, {"podCidr": cc.pod_subnet, "flannel": {"args": args}}),
    )


def workload_applications(
    cc: ClusterConfig,
    kube,
    interfaces: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> List[ApplicationDescription]:
    apps: List[ApplicationDescription] = []

    if cc.cni == "flannel":
        apps.append(flannel_application(cc, interfaces or []))
    else:
        log.debug("No CNI will be installed")

    if not cc.headless:
        apps.append(ApplicationDescription(_app(UI)))
    if cc.catalog:
        apps.append(ApplicationDescription(_app(CATALOG)))

    if cc.olvm.csi_driver.install:
        apps.append(csi_application(cc, kube, environ))
    else:
        log.debug("ovirtCsiDriver.install is false, skipping driver installation")

    for app in cc.applications:
        apps.append(ApplicationDescription(app))
    return apps
