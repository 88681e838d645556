# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/driver.py
"""
Cluster lifecycle for the OLVM (oVirt) Cluster API provider.

    start()       management cluster, CAPI controllers, resources, workload kubeconfig, addons
    post_start()  pivot to a self-managed cluster
    stage(v)      replacement machine templates and patch instructions for an upgrade
    delete()      move back if self-managed, delete the Cluster, drop secrets
    close()       stop the ephemeral management cluster when it is no longer needed

Every collaborator can be injected so tests never reach a real cluster.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Tuple

from ocne.bootstrap.ephemeral import BootstrapManager
from ocne.cache.cluster_cache import ClusterCache
from ocne.capi.graph import CAPI_API_VERSION, CLUSTER_KIND, CLUSTER_NAME_LABEL, get_cluster_graph
from ocne.capi.move import move_cluster
from ocne.config.loader import read_cluster_definition
from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError, InstallError, OcneError, is_not_found
from ocne.execution.runner import CommandRunner
from ocne.helm.catalog import CatalogRegistry
from ocne.helm.cli_runner import HelmCliRunner
from ocne.install.applications import ApplicationDescription, ApplicationInstaller
from ocne.k8s.client import KubeClient, get_kube_client
from ocne.k8s.kubeconfig import kubeconfig_path_for_cluster, write_kubeconfig
from ocne.k8s.resources import Obj, ResourceApplier, labels_of, name_of, namespace_of, parse
from ocne.observers.dispatcher import EventBus
from ocne.observers.events import (
    ClusterDeleted,
    ClusterMoved,
    ClusterStaged,
    ControllersFailed,
    ControllersInstalled,
    ControllersReady,
    LifecycleSummary,
    ResourcesApplied,
    WorkloadKubeconfigReady,
    new_ctx,
)
from ocne.ovirt.credentials import Credentials
from ocne.utils.retry import Poll, linear_retry_timeout
from ocne.waiters.waiter import ProgressRenderer, Waiter, wait_for
from . import apps
from .logscanner import LogFollower
from .resources import delete_required_resources
from .stage import stage_cluster
from .template import render_cluster_resources
from .validate import apply_node_defaults

log = logging.getLogger("ocne")

DEFAULT_TIMEOUT = 20 * 60
DEFAULT_DELAY = 5.0

KUBECONFIG_SECRET_MARKER = "kubeconfig"
KUBECONFIG_SECRET_KEY = "value"

INVALID_CLUSTER = f"Cluster resources do not include a valid {CAPI_API_VERSION}/{CLUSTER_KIND}"
UI_NAMESPACE = apps.UI[1]
UI_SERVICE = "ui"
UI_SERVICE_PORT = 8443
UI_TARGET_PORT = 443
UI_ACCESS_HELP = (
    "To access the UI, first do kubectl port-forward to allow the browser to access the UI.\n"
    "Run the following command, then access the UI from the browser using via https://localhost:{port}"
)
JOIN_MESSAGE = (
    "Joining new nodes to this cluster is done by editing the KubeadmControlPlane "
    "and MachineDeployment resources in the management cluster"
)


def _default_applier(kube: KubeClient) -> ResourceApplier:
    return ResourceApplier(kube.dynamic)


class OlvmDriver:
    def __init__(
        self,
        cc: ClusterConfig,
        *,
        kubeconfig: str = "",
        bootstrap: Optional[BootstrapManager] = None,
        kube_factory: Callable[[str], KubeClient] = get_kube_client,
        applier_factory: Callable[[KubeClient], ResourceApplier] = _default_applier,
        installer_factory: Optional[Callable[[KubeClient], ApplicationInstaller]] = None,
        runner: Optional[CommandRunner] = None,
        cache: Optional[ClusterCache] = None,
        bus: Optional[EventBus] = None,
        environ: Optional[Mapping[str, str]] = None,
        follow_logs: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        delay: float = DEFAULT_DELAY,
    ):
        self.cc = apply_node_defaults(cc)
        self.kubeconfig_flag = kubeconfig
        self.bus = bus or EventBus()
        self.environ = os.environ if environ is None else environ
        self.runner = runner or CommandRunner(logger=log, label="olvm")
        self.bootstrap = bootstrap or BootstrapManager(
            runner=self.runner, kube_factory=kube_factory, bus=self.bus, environ=self.environ
        )
        self.kube_factory = kube_factory
        self.applier_factory = applier_factory
        self.installer_factory = installer_factory or self._default_installer
        self.cache = cache or ClusterCache()
        self.follow_logs = follow_logs
        self.timeout = timeout
        self.delay = delay

        self.resources, self.from_template = read_cluster_definition(self.cc)
        self.bootstrap_kubeconfig = ""
        self.kubeconfig_path = str(kubeconfig_path_for_cluster(self.cc.name))
        self.resource_namespace = ""
        self.cluster_name = ""
        self.ephemeral = False
        self.deleted = False

    # ------------------------- helpers -------------------------

    def _ctx(self, env: str, context: Optional[str]):
        return new_ctx(env=env, context=context)

    def _default_installer(self, kube: KubeClient) -> ApplicationInstaller:
        return ApplicationInstaller(
            kube,
            HelmCliRunner(kubeconfig=kube.kubeconfig),
            CatalogRegistry(self.cc.catalogs),
            bus=self.bus,
            working_dir=self.cc.working_directory,
        )

    def _load_resources(self) -> str:
        if self.from_template and not self.resources:
            self.resources = render_cluster_resources(self.cc)
        return self.resources

    def cluster_object(self) -> Obj:
        """The single Cluster in the resource bundle."""
        clusters = [
            o for o in parse(self._load_resources())
            if o.get("apiVersion") == CAPI_API_VERSION and o.get("kind") == CLUSTER_KIND
        ]
        if len(clusters) != 1:
            raise ConfigInvalidError(INVALID_CLUSTER)
        cluster = clusters[0]
        labels = labels_of(cluster)
        if CLUSTER_NAME_LABEL not in labels:
            raise ConfigInvalidError(f"{INVALID_CLUSTER}: missing label {CLUSTER_NAME_LABEL}")
        if labels[CLUSTER_NAME_LABEL] != name_of(cluster):
            raise ConfigInvalidError(
                f"{INVALID_CLUSTER}: label {CLUSTER_NAME_LABEL}={labels[CLUSTER_NAME_LABEL]} "
                f"does not match name {name_of(cluster)}"
            )
        self.cluster_name = labels[CLUSTER_NAME_LABEL]
        self.resource_namespace = namespace_of(cluster, self.cc.olvm.namespace)
        return cluster

    def _ensure_management(self) -> str:
        if not self.bootstrap_kubeconfig:
            self.bootstrap_kubeconfig, self.ephemeral = self.bootstrap.ensure_cluster(self.kubeconfig_flag, self.cc)
        return self.bootstrap_kubeconfig

    def _management_kubeconfig(self) -> str:
        """Where the Cluster API objects live now."""
        if self.cc.olvm.self_managed and Path(self.kubeconfig_path).is_file():
            return self.kubeconfig_path
        return self._ensure_management()

    def _install(self, kube: KubeClient, descs: List[ApplicationDescription]) -> None:
        self.installer_factory(kube).install(descs, quiet=self.cc.quiet)

    def install_capi(self, kube: KubeClient) -> None:
        descs = apps.capi_applications(self.cc, kube, self.environ)
        self._install(kube, descs)
        self.bus.emit(
            ControllersInstalled(
                cluster_name=self.cc.name,
                releases=[d.application.release_name() for d in descs],
                **self._ctx("management", kube.kubeconfig),
            )
        )

    def wait_for_controllers(self, kube: KubeClient) -> None:
        def wait(args: Tuple[str, str]) -> None:
            namespace, deployment = args
            kube.wait_for_deployment(namespace, deployment, timeout=self.timeout, delay=self.delay)

        waiters = [Waiter(message=msg, wait_function=wait, args=(ns, dep)) for msg, ns, dep in apps.CONTROLLERS]
        renderer = ProgressRenderer(quiet=self.cc.quiet).start()
        try:
            failed = wait_for(waiters, renderer)
        finally:
            renderer.stop()

        if failed:
            errors = "; ".join(f"{w.message}: {w.error}" for w in waiters if w.error is not None)
            self.bus.emit(
                ControllersFailed(cluster_name=self.cc.name, error=errors, **self._ctx("management", kube.kubeconfig))
            )
            raise InstallError("Not all Cluster API controllers became available")
        self.bus.emit(ControllersReady(cluster_name=self.cc.name, **self._ctx("management", kube.kubeconfig)))

    def apply_resources(self, kube: KubeClient) -> Tuple[int, int]:
        """Create every object in the bundle. Types whose CRDs are not served yet are skipped."""
        applier = self.applier_factory(kube)
        created = skipped = 0
        for obj in parse(self._load_resources()):
            try:
                if applier.create_if_not_exists(obj, namespace_of(obj) or None):
                    created += 1
                else:
                    skipped += 1
            except Exception as exc:
                if not is_not_found(exc):
                    raise
                log.debug("skipping %s %s: %s", obj.get("kind"), name_of(obj), exc)
                skipped += 1
        self.bus.emit(
            ResourcesApplied(
                cluster_name=self.cc.name,
                created=created,
                skipped=skipped,
                **self._ctx("management", kube.kubeconfig),
            )
        )
        return created, skipped

    def wait_for_kubeconfig(self, kube: KubeClient, namespace: str) -> bytes:
        if not self.cluster_name:
            self.cluster_object()
        selector = f"{CLUSTER_NAME_LABEL}={self.cluster_name}"

        def poll() -> Poll:
            try:
                value = kube.find_secret_value(namespace, selector, KUBECONFIG_SECRET_MARKER, KUBECONFIG_SECRET_KEY)
            except Exception as exc:
                return Poll.again(exc)
            return Poll.ok(value)

        log.info("Waiting for the kubeconfig of cluster %s", self.cluster_name)
        if not self.follow_logs:
            return linear_retry_timeout(poll, timeout=self.timeout, delay=self.delay)
        follower = LogFollower(kube.kubeconfig, apps.OLVM_CAPI[1], apps.OLVM_CAPI_DEPLOYMENT, runner=self.runner)
        with follower:
            return linear_retry_timeout(poll, timeout=self.timeout, delay=self.delay)

    def wait_for_nodes(self, kube: KubeClient) -> None:
        def poll() -> Poll:
            try:
                kube.list_nodes()
            except Exception as exc:
                return Poll.again(exc)
            return Poll.ok()

        log.info("Waiting for the Kubernetes API server of cluster %s", self.cc.name)
        linear_retry_timeout(poll, timeout=self.timeout, delay=self.delay)

    def _summary(self, operation: str, error: Optional[BaseException] = None) -> None:
        self.bus.emit(
            LifecycleSummary(
                cluster_name=self.cc.name,
                operation=operation,
                status="FAILED" if error else "OK",
                error=str(error) if error else None,
                **self._ctx("workload", self.kubeconfig_path),
            )
        )

    # ------------------------- lifecycle -------------------------

    def start(self) -> Tuple[bool, bool]:
        """Returns (was_running, skip_install)."""
        try:
            self._start()
        except Exception as exc:
            self._summary("start", exc)
            raise
        self._summary("start")
        return False, False

    def _start(self) -> None:
        # pre-flight: nothing below this block may run on bad input
        self.cache.check(self.cc)
        Credentials.from_env(self.environ)
        cluster = self.cluster_object()
        namespace = self.resource_namespace

        mgmt = self.kube_factory(self._ensure_management())
        mgmt.ensure_namespace(namespace)

        self.install_capi(mgmt)
        self.wait_for_controllers(mgmt)
        self.apply_resources(mgmt)

        kubeconfig = self.wait_for_kubeconfig(mgmt, namespace)
        write_kubeconfig(self.kubeconfig_path, kubeconfig)
        self.bus.emit(
            WorkloadKubeconfigReady(
                cluster_name=name_of(cluster),
                path=self.kubeconfig_path,
                **self._ctx("workload", self.kubeconfig_path),
            )
        )

        workload = self.kube_factory(self.kubeconfig_path)
        self.wait_for_nodes(workload)
        self._install(
            workload,
            apps.workload_applications(self.cc, workload, self.default_cni_interfaces(), self.environ),
        )
        self.cache.add(self.cc, self.kubeconfig_path)

    def post_start(self) -> None:
        if not self.cc.olvm.self_managed:
            return
        workload = self.kube_factory(self.kubeconfig_path)
        self.install_capi(workload)
        self.wait_for_controllers(workload)

        if not self.resource_namespace:
            self.cluster_object()
        source = self._ensure_management()
        move_cluster(source, self.kubeconfig_path, self.resource_namespace, runner=self.runner, dry_run=False)
        self.bus.emit(
            ClusterMoved(
                cluster_name=self.cc.name,
                namespace=self.resource_namespace,
                source=source,
                target=self.kubeconfig_path,
                **self._ctx("workload", self.kubeconfig_path),
            )
        )

    def stage(self, version: str) -> Tuple[str, str, bool]:
        """Returns (workload kubeconfig path, help text, changed)."""
        cluster = self.cluster_object()
        name, namespace = name_of(cluster), self.resource_namespace

        mgmt = self.kube_factory(self._management_kubeconfig())
        applier = self.applier_factory(mgmt)
        graph = get_cluster_graph(applier, namespace, name)
        result = stage_cluster(applier, graph, self.cc, version, self.environ)

        kubeconfig = self.wait_for_kubeconfig(mgmt, namespace)
        with tempfile.NamedTemporaryFile(prefix=f"kubeconfig.{name}.", delete=False) as fh:
            path = fh.name
        write_kubeconfig(path, kubeconfig)

        self.bus.emit(
            ClusterStaged(
                cluster_name=name,
                version=version,
                templates_created=len(result.created),
                changed=True,
                **self._ctx("management", mgmt.kubeconfig),
            )
        )
        return path, result.help, True

    def delete(self) -> None:
        cluster = self.cluster_object()
        name, namespace = name_of(cluster), self.resource_namespace

        mgmt_path = self._ensure_management()
        if self.cc.olvm.self_managed:
            move_cluster(self.kubeconfig_path, mgmt_path, namespace, runner=self.runner, dry_run=False)
            self.bus.emit(
                ClusterMoved(
                    cluster_name=name,
                    namespace=namespace,
                    source=self.kubeconfig_path,
                    target=mgmt_path,
                    **self._ctx("management", mgmt_path),
                )
            )

        mgmt = self.kube_factory(mgmt_path)
        applier = self.applier_factory(mgmt)
        log.info("Deleting Cluster %s/%s", namespace, name)
        applier.delete_by_identifier(CAPI_API_VERSION, CLUSTER_KIND, name, namespace)

        def gone() -> Poll:
            try:
                applier.get_by_identifier(CAPI_API_VERSION, CLUSTER_KIND, name, namespace)
            except Exception as exc:
                if is_not_found(exc):
                    return Poll.ok()
                return Poll.again(exc)
            return Poll.again(OcneError(f"Cluster {namespace}/{name} still exists"))

        linear_retry_timeout(gone, timeout=self.timeout, delay=self.delay)

        try:
            Path(self.kubeconfig_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.error("Error removing kubeconfig %s: %s", self.kubeconfig_path, exc)

        delete_required_resources(mgmt, self.cc)
        self.cache.remove(self.cc.name)
        self.deleted = True
        self.bus.emit(ClusterDeleted(cluster_name=name, namespace=namespace, **self._ctx("management", mgmt_path)))

    def close(self) -> None:
        # deletion finishes in the background; keep the management cluster
        if self.deleted:
            return
        if self.ephemeral and self.cc.olvm.self_managed:
            self.bootstrap.stop_ephemeral_cluster(self.cc)

    # ------------------------- extras -------------------------

    def join(self, *args, **kwargs) -> None:
        raise OcneError(JOIN_MESSAGE)

    def stop(self) -> None:
        raise OcneError("OlvmDriver.Stop() is not implemented")

    def get_kubeconfig_path(self) -> str:
        return self.kubeconfig_path

    def get_kube_api_server_address(self) -> str:
        return self.cc.virtual_ip

    def post_install_help_stanza(self) -> str:
        return f"To access the cluster:\n    use {self.kubeconfig_path}"

    def post_install_message(self) -> str:
        """Help printed after a successful start; UI access steps unless headless."""
        stanza = self.post_install_help_stanza()
        if self.cc.headless:
            return f"Post install information:\n\n{stanza}\n"
        return "\n".join(
            [
                f"Post install information:\n\n{stanza}",
                UI_ACCESS_HELP.format(port=UI_SERVICE_PORT),
                f"    kubectl port-forward -n {UI_NAMESPACE} service/{UI_SERVICE} {UI_SERVICE_PORT}:{UI_TARGET_PORT}",
                f"Run the following command to create an authentication token to access the UI:\n"
                f"    kubectl create token ui -n {UI_NAMESPACE}",
            ]
        )

    def default_cni_interfaces(self) -> List[str]:
        return []
