# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/k8s/client.py
from __future__ import annotations

import base64
import functools
import logging
from typing import Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient

from ocne.errors import ConfigInvalidError, NotFoundError, OcneError
from ocne.utils.retry import Poll, linear_retry_timeout

log = logging.getLogger("ocne")

DEFAULT_DEPLOYMENT_TIMEOUT = 20 * 60


def _not_found(exc: ApiException, what: str) -> Exception:
    if exc.status == 404:
        return NotFoundError(f"{what} not found")
    return OcneError(f"{what}: {exc.status} {exc.reason}")


class KubeClient:
    """
    Typed and dynamic Kubernetes access for one kubeconfig.

    Lookups that miss raise NotFoundError; callers test for it with
    ocne.errors.is_not_found.
    """

    def __init__(self, kubeconfig: str, api_client: Optional[client.ApiClient] = None):
        self.kubeconfig = kubeconfig
        if api_client is None:
            try:
                api_client = config.new_client_from_config(config_file=kubeconfig)
            except (ConfigException, OSError) as exc:
                raise ConfigInvalidError(f"cannot load kubeconfig {kubeconfig}: {exc}") from exc
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self._dynamic: Optional[DynamicClient] = None

    @property
    def dynamic(self) -> DynamicClient:
        # discovery runs on first use only
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    # ------------------------- cluster -------------------------

    def is_reachable(self) -> bool:
        try:
            client.VersionApi(self.api_client).get_code()
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as exc:
            log.debug("cluster behind %s is not reachable: %s", self.kubeconfig, exc)
            return False
        return True

    def list_nodes(self) -> List[client.V1Node]:
        return list(self.core.list_node().items)

    # ------------------------- namespaces -------------------------

    def ensure_namespace(self, name: str) -> None:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        try:
            self.core.create_namespace(body)
            log.debug("created namespace %s", name)
        except ApiException as exc:
            if exc.status != 409:
                raise

    # ------------------------- secrets / configmaps -------------------------

    def apply_secret(
        self,
        namespace: str,
        name: str,
        string_data: Dict[str, str],
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
            string_data=string_data,
            type="Opaque",
        )
        try:
            self.core.create_namespaced_secret(namespace, body)
        except ApiException as exc:
            if exc.status != 409:
                raise
            self.core.replace_namespaced_secret(name, namespace, body)
        log.debug("secret %s/%s is up to date", namespace, name)

    def apply_configmap(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=data,
        )
        try:
            self.core.create_namespaced_config_map(namespace, body)
        except ApiException as exc:
            if exc.status != 409:
                raise
            self.core.replace_namespaced_config_map(name, namespace, body)
        log.debug("configmap %s/%s is up to date", namespace, name)

    def delete_secret(self, namespace: str, name: str) -> None:
        try:
            self.core.delete_namespaced_secret(name, namespace)
        except ApiException as exc:
            raise _not_found(exc, f"Secret {namespace}/{name}") from exc

    def delete_configmap(self, namespace: str, name: str) -> None:
        try:
            self.core.delete_namespaced_config_map(name, namespace)
        except ApiException as exc:
            raise _not_found(exc, f"ConfigMap {namespace}/{name}") from exc

    def find_secret_value(self, namespace: str, label_selector: str, name_contains: str, key: str) -> bytes:
        """
        Value of *key* in the first secret matching *label_selector* whose
        name contains *name_contains*.
        """
        secrets = self.core.list_namespaced_secret(namespace, label_selector=label_selector).items
        for s in secrets:
            if name_contains not in (s.metadata.name or ""):
                continue
            raw = (s.data or {}).get(key)
            if raw:
                return base64.b64decode(raw)
        raise NotFoundError(f"no secret matching {label_selector} with name containing {name_contains} found")

    # ------------------------- deployments -------------------------

    def deployment_ready(self, namespace: str, name: str) -> Poll:
        try:
            dep = self.apps.read_namespaced_deployment(name, namespace)
        except ApiException as exc:
            return Poll.again(_not_found(exc, f"Deployment {namespace}/{name}"))

        desired = dep.spec.replicas if dep.spec.replicas is not None else 1
        available = (dep.status.available_replicas if dep.status else 0) or 0
        if desired > 0 and available >= desired:
            return Poll.ok()
        return Poll.again(OcneError(f"Deployment {namespace}/{name} has {available}/{desired} available replicas"))

    def wait_for_deployment(
        self,
        namespace: str,
        name: str,
        *,
        timeout: float = DEFAULT_DEPLOYMENT_TIMEOUT,
        delay: float = 5.0,
    ) -> None:
        log.debug("waiting for deployment %s/%s", namespace, name)
        linear_retry_timeout(lambda: self.deployment_ready(namespace, name), timeout=timeout, delay=delay)


@functools.lru_cache(maxsize=None)
def get_kube_client(kubeconfig: str) -> KubeClient:
    """One client per kubeconfig path for the life of the process."""
    return KubeClient(kubeconfig)
