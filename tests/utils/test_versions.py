import pytest

from ocne.errors import ConfigInvalidError
from ocne.utils.versions import (
    compare_kubernetes_versions,
    get_kubernetes_versions,
    normalize_kubernetes_version,
)


@pytest.mark.parametrize(
    "version, expected",
    [("1.30", "v1.30.0"), ("v1.30.3", "v1.30.3"), ("1.31.0", "v1.31.0"), ("v1.29.3+ocne", "v1.29.3")],
)
def test_normalize(version, expected):
    assert normalize_kubernetes_version(version) == expected


def test_normalize_rejects_garbage():
    with pytest.raises(ConfigInvalidError):
        normalize_kubernetes_version("latest")


@pytest.mark.parametrize(
    "a, b, expected",
    [("1.30", "v1.30.9", 0), ("1.29", "1.30", -1), ("v1.31.0", "1.30.3", 1)],
)
def test_compare_ignores_patch(a, b, expected):
    assert compare_kubernetes_versions(a, b) == expected


def test_get_kubernetes_versions_resolves_minor():
    assert get_kubernetes_versions("1.30").kubernetes == "1.30.3"
    assert get_kubernetes_versions("v1.30.3").etcd == "3.5.12"
    assert get_kubernetes_versions("1.30.1").kubernetes == "1.30.3"


def test_get_kubernetes_versions_unknown():
    with pytest.raises(ConfigInvalidError, match="No Kubernetes version available"):
        get_kubernetes_versions("1.12")
