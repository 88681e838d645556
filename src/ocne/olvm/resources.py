# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/resources.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from ocne.config.models import ClusterConfig, NamespacedName, OlvmProvider
from ocne.errors import ConfigInvalidError
from ocne.ovirt.credentials import Credentials

log = logging.getLogger("ocne")

CRED_SECRET_SUFFIX = "ovirt-creds"
CA_CONFIGMAP_SUFFIX = "ovirt-ca"
CA_KEY = "ca.crt"


def cred_secret_nsn(cc: ClusterConfig) -> NamespacedName:
    """The credentials Secret the OLVMCluster points at. Configured values win."""
    ref = cc.olvm.olvm_api_server.credentials_secret
    return NamespacedName(
        name=ref.name or f"{cc.name}-{CRED_SECRET_SUFFIX}",
        namespace=ref.namespace or cc.olvm.namespace,
    )


def ca_configmap_nsn(cc: ClusterConfig) -> NamespacedName:
    ref = cc.olvm.olvm_api_server.ca_config_map
    return NamespacedName(
        name=ref.name or f"{cc.name}-{CA_CONFIGMAP_SUFFIX}",
        namespace=ref.namespace or cc.olvm.namespace,
    )


def get_ca(provider: OlvmProvider, working_dir: str = "") -> str:
    """The oVirt CA bundle, given inline or as a path to a PEM file."""
    api = provider.olvm_api_server
    if api.server_ca and api.server_ca_path:
        raise ConfigInvalidError("The OLVM Provider cannot specify both ovirtApiCA and ovirtApiCAPath")
    if api.server_ca:
        return api.server_ca
    if not api.server_ca_path:
        raise ConfigInvalidError("The OLVM Provider must specify ovirtApiCA or ovirtApiCAPath")

    p = Path(api.server_ca_path).expanduser()
    if not p.is_absolute() and working_dir:
        p = Path(working_dir) / p
    try:
        return p.read_text()
    except OSError as exc:
        raise ConfigInvalidError(f"Error reading OLVM Provider oVirt CA file: {exc}") from exc


def create_required_resources(
    kube,
    cc: ClusterConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> None:
    """
    Credentials Secret and CA ConfigMap for the OLVM controller. Both are
    rewritten on every run so rotated credentials take effect.
    """
    creds = Credentials.from_env(environ)
    ca = get_ca(cc.olvm, cc.working_directory)

    secret = cred_secret_nsn(cc)
    cm = ca_configmap_nsn(cc)

    kube.ensure_namespace(secret.namespace)
    log.debug("writing oVirt credentials to Secret %s/%s", secret.namespace, secret.name)
    kube.apply_secret(secret.namespace, secret.name, creds.secret_data())

    if cm.namespace != secret.namespace:
        kube.ensure_namespace(cm.namespace)
    log.debug("writing oVirt CA to ConfigMap %s/%s", cm.namespace, cm.name)
    kube.apply_configmap(cm.namespace, cm.name, {CA_KEY: ca})


def delete_required_resources(kube, cc: ClusterConfig) -> None:
    """Best effort; failures are logged."""
    secret = cred_secret_nsn(cc)
    cm = ca_configmap_nsn(cc)
    try:
        kube.delete_secret(secret.namespace, secret.name)
    except Exception as exc:
        log.error("Error deleting oVirt credential secret %s/%s: %s", secret.namespace, secret.name, exc)
    try:
        kube.delete_configmap(cm.namespace, cm.name)
    except Exception as exc:
        log.error("Error deleting oVirt CA configmap %s/%s: %s", cm.namespace, cm.name, exc)
