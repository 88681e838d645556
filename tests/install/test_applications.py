import pytest

from ocne.config.models import Application
from ocne.errors import InstallError
from ocne.helm.catalog import ChartEntry
from ocne.install.applications import ApplicationDescription, ApplicationInstaller
from ocne.observers.dispatcher import EventBus
from ocne.waiters.waiter import ProgressRenderer


class FakeKube:
    def __init__(self):
        self.namespaces = []

    def ensure_namespace(self, ns):
        self.namespaces.append(ns)


class FakeCatalog:
    name = "Oracle Cloud Native Environment Application Catalog"

    def entry(self, name, version=""):
        return ChartEntry(name, version or "1.0.0", urls=[f"{name}.tgz"])

    def fetch(self, entry, dest):
        return f"{dest}/{entry.name}-{entry.version}.tgz"


class FakeCatalogs:
    def get(self, name):
        return FakeCatalog()


class FakeHelm:
    kubeconfig = "/tmp/kc"

    def __init__(self, existing=(), failing=()):
        self.existing = set(existing)
        self.failing = set(failing)
        self.installed = []
        self.upgraded = []

    def release_exists(self, release, namespace):
        return (release, namespace) in self.existing

    def install(self, release, namespace, chart, values=None):
        if release in self.failing:
            raise RuntimeError(f"{release} exploded")
        self.installed.append((release, namespace, values))

    def upgrade(self, release, namespace, chart, values=None):
        self.upgraded.append((release, namespace, values))


class Recorder:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def _installer(helm, kube=None, recorder=None):
    bus = EventBus(observers=[recorder] if recorder else [])
    return ApplicationInstaller(kube or FakeKube(), helm, FakeCatalogs(), bus=bus, retries=1, retry_delay=0)


def _desc(name, namespace="kube-system", **kwargs):
    return ApplicationDescription(Application(name=name, namespace=namespace), **kwargs)


def _quiet():
    return ProgressRenderer(quiet=True)


def test_installs_in_order_with_values():
    helm = FakeHelm()
    kube = FakeKube()
    apps = [
        ApplicationDescription(Application(name="flannel", namespace="kube-flannel", config={"podCidr": "10.244.0.0/16"})),
        _desc("ui", "ocne-system"),
    ]

    _installer(helm, kube).install(apps, renderer=_quiet())

    assert helm.installed == [
        ("flannel", "kube-flannel", {"podCidr": "10.244.0.0/16"}),
        ("ui", "ocne-system", {}),
    ]
    assert kube.namespaces == ["kube-flannel", "ocne-system"]


def test_existing_release_is_skipped_unless_forced():
    helm = FakeHelm(existing={("ui", "ocne-system"), ("flannel", "kube-flannel")})

    _installer(helm).install(
        [_desc("ui", "ocne-system"), _desc("flannel", "kube-flannel", force=True)], renderer=_quiet()
    )

    assert helm.installed == []
    assert [u[0] for u in helm.upgraded] == ["flannel"]


def test_pre_install_runs_before_helm():
    order = []
    helm = FakeHelm()
    helm.install = lambda release, namespace, chart, values=None: order.append("helm")

    _installer(helm).install([_desc("csi", pre_install=lambda: order.append("pre"))], renderer=_quiet())

    assert order == ["pre", "helm"]


def test_first_failure_stops_the_run():
    helm = FakeHelm(failing={"core-dns"})
    recorder = Recorder()
    apps = [_desc("flannel"), _desc("core-dns"), _desc("ui")]

    with pytest.raises(InstallError, match="Could not install all applications"):
        _installer(helm, recorder=recorder).install(apps, renderer=_quiet())

    assert [i[0] for i in helm.installed] == ["flannel"]
    kinds = [type(e).__name__ for e in recorder.events]
    assert kinds == ["ApplicationInstalled", "ApplicationFailed"]


def test_values_from_file(tmp_path):
    (tmp_path / "ui.yaml").write_text("replicas: 2\nservice: {type: ClusterIP}\n")
    helm = FakeHelm()
    app = Application(name="ui", namespace="ocne-system", config_from="ui.yaml", config={"replicas": 3})
    installer = ApplicationInstaller(FakeKube(), helm, FakeCatalogs(), retries=1, retry_delay=0, working_dir=str(tmp_path))

    installer.install([ApplicationDescription(app)], renderer=_quiet())

    assert helm.installed[0][2] == {"replicas": 3, "service": {"type": "ClusterIP"}}
