import json

import pytest

from ocne.cache.cluster_cache import ClusterCache
from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError


@pytest.fixture
def cache(tmp_path):
    return ClusterCache(tmp_path / "clusters.json")


def test_add_get_remove(cache):
    cc = ClusterConfig(name="demo", kube_version="1.30")

    cache.add(cc, "/home/u/.kube/kubeconfig.demo")

    entry = cache.get("demo")
    assert (entry.provider, entry.kube_version, entry.kubeconfig_path) == ("olvm", "1.30", "/home/u/.kube/kubeconfig.demo")
    stored = json.loads(cache.path.read_text())
    assert stored["demo"]["kubeconfigPath"] == "/home/u/.kube/kubeconfig.demo"

    cache.remove("demo")
    assert cache.get("demo") is None
    cache.remove("demo")


def test_check_accepts_unknown_and_matching(cache):
    cache.check(ClusterConfig(name="demo"))
    cache.add(ClusterConfig(name="demo", kube_version="1.30.3"), "")
    cache.check(ClusterConfig(name="demo", kube_version="v1.30.3"))


def test_check_rejects_other_provider(cache):
    cache.add(ClusterConfig(name="demo", provider="libvirt", kube_version="1.30"), "")

    with pytest.raises(ConfigInvalidError, match="provider libvirt"):
        cache.check(ClusterConfig(name="demo", kube_version="1.30"))


def test_check_rejects_other_minor_version(cache):
    cache.add(ClusterConfig(name="demo", kube_version="1.30"), "")

    with pytest.raises(ConfigInvalidError, match="Kubernetes version 1.30"):
        cache.check(ClusterConfig(name="demo", kube_version="1.31"))


def test_corrupt_cache(cache):
    cache.path.write_text("[not a mapping")

    with pytest.raises(ConfigInvalidError, match="corrupt"):
        cache.get("demo")


@pytest.mark.parametrize("cached, requested", [("v1.30.3", "v1.30.5"), ("1.30", "1.30.3")])
def test_check_rejects_other_patch_version(cache, cached, requested):
    cache.add(ClusterConfig(name="demo", kube_version=cached), "")

    with pytest.raises(ConfigInvalidError, match=f"Kubernetes version {cached}, not {requested}"):
        cache.check(ClusterConfig(name="demo", kube_version=requested))
