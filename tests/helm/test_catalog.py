import pytest
import responses

from ocne.config.models import INTERNAL_CATALOG, INTERNAL_CATALOG_URI, Catalog
from ocne.errors import NotFoundError
from ocne.helm.catalog import CatalogRegistry, HelmRepoCatalog
from ocne.helm.errors import ChartDownloadError

INDEX = """
apiVersion: v1
entries:
  ovirt-csi-driver:
    - name: ovirt-csi-driver
      version: 4.20.1
      urls: [charts/ovirt-csi-driver-4.20.1.tgz]
    - name: ovirt-csi-driver
      version: 4.19.0
      urls: [charts/ovirt-csi-driver-4.19.0.tgz]
"""


@responses.activate
def test_entry_picks_newest_or_requested():
    responses.add(responses.GET, "https://charts.example.com/index.yaml", body=INDEX)
    cat = HelmRepoCatalog("example", "https://charts.example.com")

    assert cat.entry("ovirt-csi-driver").version == "4.20.1"
    assert cat.entry("ovirt-csi-driver", "v4.19.0").version == "4.19.0"
    with pytest.raises(NotFoundError):
        cat.entry("ovirt-csi-driver", "1.0.0")
    with pytest.raises(NotFoundError):
        cat.entry("nothing")
    # index is read once
    assert len(responses.calls) == 1


@responses.activate
def test_fetch_writes_archive(tmp_path):
    responses.add(responses.GET, "https://charts.example.com/index.yaml", body=INDEX)
    responses.add(responses.GET, "https://charts.example.com/charts/ovirt-csi-driver-4.20.1.tgz", body=b"tgz")
    cat = HelmRepoCatalog("example", "https://charts.example.com/")

    out = cat.fetch(cat.entry("ovirt-csi-driver"), tmp_path)

    assert out.name == "ovirt-csi-driver-4.20.1.tgz"
    assert out.read_bytes() == b"tgz"


@responses.activate
def test_fetch_failure(tmp_path):
    responses.add(responses.GET, "https://charts.example.com/charts/x-1.tgz", status=404)
    cat = HelmRepoCatalog("example", "https://charts.example.com")

    from ocne.helm.catalog import ChartEntry

    with pytest.raises(ChartDownloadError):
        cat.fetch(ChartEntry("x", "1", urls=["charts/x-1.tgz"]), tmp_path)


def test_registry_always_has_internal_catalog():
    reg = CatalogRegistry([Catalog(name="mine", uri="https://mine.example.com")])

    assert reg.get(INTERNAL_CATALOG).uri == INTERNAL_CATALOG_URI + "/"
    assert reg.get("mine").uri == "https://mine.example.com/"
    with pytest.raises(NotFoundError, match="Catalog other not found"):
        reg.get("other")
