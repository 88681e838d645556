# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/bootstrap/ephemeral.py
"""
Management cluster selection.

An explicitly given, reachable kubeconfig is used as is. Otherwise a
single node libvirt cluster is started with the `ocne` CLI and used as a
throwaway management cluster.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml

from ocne.config.models import ClusterConfig
from ocne.config.overlay import ConfigOverlay
from ocne.errors import OcneError
from ocne.execution.runner import CommandRunner
from ocne.k8s.client import KubeClient, get_kube_client
from ocne.k8s.kubeconfig import resolve_kubeconfig
from ocne.observers.dispatcher import EventBus
from ocne.observers.events import ManagementClusterReady, ManagementClusterStopped, new_ctx
from ocne.utils.tunnel import SshTunnel

log = logging.getLogger("ocne")

EPHEMERAL_PROVIDER = "libvirt"
EPHEMERAL_CNI = "flannel"


def ephemeral_overlay(cc: ClusterConfig) -> ConfigOverlay:
    """The cluster configuration as seen by the ephemeral cluster."""
    return ConfigOverlay(
        cc,
        provider=EPHEMERAL_PROVIDER,
        name=cc.ephemeral_config.name,
        control_plane_nodes=1,
        worker_nodes=0,
        headless=True,
        catalog=False,
        community_catalog=False,
        cni=EPHEMERAL_CNI,
        quiet=True,
    )


def ephemeral_kubeconfig_path(name: str) -> Path:
    return Path.home() / ".kube" / f"kubeconfig.{name}.local"


def ephemeral_config_document(view: ConfigOverlay) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "name": view.name,
        "provider": view.provider,
        "kubernetesVersion": view.kube_version,
        "controlPlaneNodes": view.control_plane_nodes,
        "workerNodes": view.worker_nodes,
        "headless": view.headless,
        "catalog": view.catalog,
        "communityCatalog": view.community_catalog,
        "cni": view.cni,
        "registry": view.registry,
        "providers": {"libvirt": {"uri": view.ephemeral_config.session}},
    }
    if not view.proxy.is_empty():
        doc["proxy"] = view.proxy.model_dump(by_alias=True)
    if view.os_tag:
        doc["osTag"] = view.os_tag
    return doc


class BootstrapManager:
    def __init__(
        self,
        *,
        runner: Optional[CommandRunner] = None,
        kube_factory: Callable[[str], KubeClient] = get_kube_client,
        bus: Optional[EventBus] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.runner = runner or CommandRunner(logger=log, label="ephemeral")
        self.kube_factory = kube_factory
        self.bus = bus or EventBus()
        self.environ = os.environ if environ is None else environ
        self.tunnel: Optional[SshTunnel] = None

    def _reachable(self, path: str) -> bool:
        if not Path(path).is_file():
            return False
        try:
            return self.kube_factory(path).is_reachable()
        except OcneError as exc:
            log.debug("kubeconfig %s is unusable: %s", path, exc)
            return False

    def ensure_cluster(self, kubeconfig_flag: str, cc: ClusterConfig) -> Tuple[str, bool]:
        """Returns (kubeconfig path, ephemeral)."""
        path, is_default = resolve_kubeconfig(kubeconfig_flag or cc.kubeconfig, self.environ)
        if not is_default and self._reachable(path):
            log.debug("using management cluster from %s", path)
            self.bus.emit(ManagementClusterReady(kubeconfig=path, ephemeral=False, **new_ctx("management", path)))
            return path, False

        if not is_default:
            log.info("Management cluster at %s is not reachable, starting an ephemeral cluster", path)

        path = self.start_ephemeral_cluster(cc)
        self.bus.emit(ManagementClusterReady(kubeconfig=path, ephemeral=True, **new_ctx("management", path)))
        return path, True

    def start_ephemeral_cluster(self, cc: ClusterConfig) -> str:
        view = ephemeral_overlay(cc)
        path = str(ephemeral_kubeconfig_path(view.name))

        tunnel_cfg = cc.ephemeral_config.tunnel
        if tunnel_cfg is not None and self.tunnel is None:
            self.tunnel = SshTunnel(
                host=tunnel_cfg.host,
                user=tunnel_cfg.user,
                local_port=tunnel_cfg.local_port,
                remote_port=tunnel_cfg.remote_port,
            )
            self.tunnel.start()

        if self._reachable(path):
            log.info("Using existing ephemeral cluster %s", view.name)
            return path

        log.info("Starting ephemeral cluster %s", view.name)
        with tempfile.NamedTemporaryFile("w", prefix="ocne-ephemeral-", suffix=".yaml", delete=False) as fh:
            yaml.safe_dump(ephemeral_config_document(view), fh, sort_keys=False)
            cfg_path = fh.name
        try:
            result = self.runner.run(["ocne", "cluster", "start", "--config", cfg_path])
        finally:
            Path(cfg_path).unlink(missing_ok=True)

        if result.returncode != 0:
            raise OcneError(f"could not start ephemeral cluster {view.name}: {(result.stderr or '').strip()}")
        return path

    def stop_ephemeral_cluster(self, cc: ClusterConfig) -> None:
        """Deletes the ephemeral cluster unless it is to be preserved."""
        eph = cc.ephemeral_config
        try:
            if eph.preserve:
                log.debug("preserving ephemeral cluster %s", eph.name)
                return
            log.info("Stopping ephemeral cluster %s", eph.name)
            result = self.runner.run(
                ["ocne", "cluster", "delete", "--cluster-name", eph.name, "--provider", EPHEMERAL_PROVIDER]
            )
            if result.returncode != 0:
                raise OcneError(f"could not delete ephemeral cluster {eph.name}: {(result.stderr or '').strip()}")
            self.bus.emit(ManagementClusterStopped(name=eph.name, **new_ctx("management", None)))
        finally:
            if self.tunnel is not None:
                self.tunnel.stop()
                self.tunnel = None
