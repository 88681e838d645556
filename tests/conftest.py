import copy

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError


def _unescape(segment):
    return segment.replace("~1", "/").replace("~0", "~")


def apply_json_patch(obj, ops):
    for op in ops:
        parts = [_unescape(p) for p in op["path"].lstrip("/").split("/")]
        parent = obj
        for p in parts[:-1]:
            parent = parent[int(p)] if isinstance(parent, list) else parent[p]
        last = parts[-1]
        if op["op"] == "remove":
            del parent[last]
        elif op["op"] == "replace":
            if last not in parent:
                raise ApiException(status=422, reason=f"replace of missing {op['path']}")
            parent[last] = copy.deepcopy(op["value"])
        else:
            parent[last] = copy.deepcopy(op["value"])


def _matches(obj, label_selector):
    if not label_selector:
        return True
    labels = (obj.get("metadata") or {}).get("labels") or {}
    for term in label_selector.split(","):
        k, _, v = term.partition("=")
        if labels.get(k) != v:
            return False
    return True


class FakeResource:
    """One apiVersion/kind in an in-memory API server."""

    def __init__(self, store, api_version, kind):
        self.store = store
        self.api_version = api_version
        self.kind = kind

    def _key(self, name, namespace):
        return (self.api_version, self.kind, namespace or "", name)

    def create(self, body, namespace=None):
        obj = copy.deepcopy(body)
        meta = obj.setdefault("metadata", {})
        if namespace:
            meta["namespace"] = namespace
        key = self._key(meta.get("name", ""), meta.get("namespace"))
        if key in self.store.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.store.objects[key] = obj
        self.store.created.append(obj)
        return copy.deepcopy(obj)

    def get(self, name=None, namespace=None, label_selector=None):
        if name is not None:
            key = self._key(name, namespace)
            if key not in self.store.objects:
                raise ApiException(status=404, reason="NotFound")
            return copy.deepcopy(self.store.objects[key])
        items = [
            copy.deepcopy(o)
            for (av, kind, ns, _), o in self.store.objects.items()
            if av == self.api_version
            and kind == self.kind
            and (not namespace or ns == namespace)
            and _matches(o, label_selector)
        ]
        return {"items": items}

    def delete(self, name, namespace=None, body=None):
        key = self._key(name, namespace)
        if key not in self.store.objects:
            raise ApiException(status=404, reason="NotFound")
        self.store.deleted.append(key)
        del self.store.objects[key]

    def patch(self, body, name, namespace=None, content_type=None):
        key = self._key(name, namespace)
        if key not in self.store.objects:
            raise ApiException(status=404, reason="NotFound")
        self.store.patches.append((key, body))
        apply_json_patch(self.store.objects[key], body)
        return copy.deepcopy(self.store.objects[key])


class FakeResources:
    def __init__(self, store):
        self.store = store

    def get(self, api_version, kind):
        if (api_version, kind) in self.store.missing_kinds:
            raise ResourceNotFoundError(f"No matches found for {api_version}/{kind}")
        return FakeResource(self.store, api_version, kind)


class FakeDynamic:
    """Just enough of kubernetes.dynamic.DynamicClient for ResourceApplier."""

    def __init__(self):
        self.objects = {}
        self.created = []
        self.deleted = []
        self.patches = []
        self.missing_kinds = set()
        self.resources = FakeResources(self)

    def load(self, *objs):
        for o in objs:
            self.resources.get(o["apiVersion"], o["kind"]).create(o)
        self.created.clear()
        return self

    def find(self, kind, name):
        for (_, k, _, n), o in self.objects.items():
            if k == kind and n == name:
                return o
        return None


@pytest.fixture
def dynamic():
    return FakeDynamic()


CAPI = "cluster.x-k8s.io/v1beta1"
INFRA = "infrastructure.cluster.x-k8s.io/v1"
KCP_API = "controlplane.cluster.x-k8s.io/v1beta1"


def build_cluster_objects(
    name="demo",
    namespace="ocne",
    version="v1.30.3",
    cp_template="ock-1.30",
    worker_template="ock-1.30",
    machine_deployments=1,
):
    """A minimal Cluster API object set: Cluster, KCP, OLVMCluster, MDs and their templates."""

    def mt(mt_name, vm_template):
        return {
            "apiVersion": INFRA,
            "kind": "OLVMMachineTemplate",
            "metadata": {"name": mt_name, "namespace": namespace, "resourceVersion": "7", "uid": "u-1"},
            "spec": {"template": {"spec": {"vmTemplateName": vm_template, "olvmOvirtClusterName": "Default"}}},
        }

    objs = [
        {
            "apiVersion": CAPI,
            "kind": "Cluster",
            "metadata": {"name": name, "namespace": namespace, "labels": {"cluster.x-k8s.io/cluster-name": name}},
            "spec": {
                "controlPlaneEndpoint": {"host": "192.168.1.100", "port": 6443},
                "controlPlaneRef": {"apiVersion": KCP_API, "kind": "KubeadmControlPlane", "name": f"{name}-control-plane"},
                "infrastructureRef": {"apiVersion": INFRA, "kind": "OLVMCluster", "name": name},
            },
        },
        {
            "apiVersion": KCP_API,
            "kind": "KubeadmControlPlane",
            "metadata": {"name": f"{name}-control-plane", "namespace": namespace},
            "spec": {
                "version": version,
                "machineTemplate": {
                    "infrastructureRef": {"apiVersion": INFRA, "kind": "OLVMMachineTemplate", "name": f"{name}-control-plane"}
                },
                "kubeadmConfigSpec": {"format": "ignition"},
            },
        },
        {"apiVersion": INFRA, "kind": "OLVMCluster", "metadata": {"name": name, "namespace": namespace}, "spec": {}},
        mt(f"{name}-control-plane", cp_template),
    ]
    for i in range(machine_deployments):
        md_name = f"{name}-md-{i}"
        objs.append(
            {
                "apiVersion": CAPI,
                "kind": "MachineDeployment",
                "metadata": {"name": md_name, "namespace": namespace, "labels": {"cluster.x-k8s.io/cluster-name": name}},
                "spec": {
                    "clusterName": name,
                    "template": {
                        "spec": {
                            "version": version,
                            "infrastructureRef": {"apiVersion": INFRA, "kind": "OLVMMachineTemplate", "name": md_name},
                        }
                    },
                },
            }
        )
        objs.append(mt(md_name, worker_template))
    return objs


@pytest.fixture
def cluster_objects():
    return build_cluster_objects


class FakeRunner:
    """Records commands instead of running them."""

    def __init__(self, returncode=0, stderr="", failing=()):
        self.commands = []
        self.returncode = returncode
        self.stderr = stderr
        # command prefixes (tuples) that exit non-zero
        self.failing = [tuple(f) for f in failing]

    def run(self, cmd, **kwargs):
        import subprocess

        cmd = [str(c) for c in cmd]
        self.commands.append(cmd)
        rc = self.returncode
        if any(tuple(cmd[: len(f)]) == f for f in self.failing):
            rc = 1
        return subprocess.CompletedProcess(cmd, rc, stdout="", stderr=self.stderr if rc else "")


@pytest.fixture
def runner():
    return FakeRunner()


CREDENTIALS_ENV = {
    "OCNE_OLVM_USERNAME": "admin@internal",
    "OCNE_OLVM_PASSWORD": "secret",
    "OCNE_OLVM_SCOPE": "ovirt-app-api",
}


@pytest.fixture
def credentials_env():
    return dict(CREDENTIALS_ENV)


def _machine(vm_template, addresses):
    return {
        "olvmOvirtClusterName": "Default",
        "vmTemplateName": vm_template,
        "olvmNetwork": {"networkName": "ovirtmgmt", "vnicProfileName": "ovirtmgmt"},
        "virtualMachine": {
            "network": {
                "gateway": "192.168.1.1",
                "ipv4": {"subnet": "192.168.1.0/24", "ipAddresses": addresses},
            }
        },
    }


def build_olvm_config(**overrides):
    """A ClusterConfig that passes OLVM validation."""
    from ocne.config.models import ClusterConfig

    data = {
        "name": "demo",
        "kubernetesVersion": "1.30",
        "controlPlaneNodes": 1,
        "workerNodes": 2,
        "virtualIp": "192.168.1.100",
        "quiet": True,
        "providers": {
            "olvm": {
                "olvmDatacenterName": "Default",
                "olvmOvirtAPIServer": {
                    "serverURL": "https://engine.example.com/ovirt-engine",
                    "serverCA": "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n",
                },
                "controlPlaneMachine": _machine("ock-1.30", "192.168.1.10-192.168.1.19"),
                "workerMachine": _machine("ock-1.30", "192.168.1.20-192.168.1.39"),
            }
        },
    }
    data.update(overrides)
    return ClusterConfig.model_validate(data)


@pytest.fixture
def olvm_config():
    return build_olvm_config
