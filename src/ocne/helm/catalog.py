# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/helm/catalog.py
"""
Application catalogs backed by a Helm repository `index.yaml`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urljoin

import requests
import yaml

from ocne.config.models import INTERNAL_CATALOG, INTERNAL_CATALOG_URI, Catalog
from ocne.errors import NotFoundError
from .errors import ChartDownloadError

log = logging.getLogger("ocne")

DEFAULT_TIMEOUT = 60


@dataclass(frozen=True)
class ChartEntry:
    name: str
    version: str
    app_version: str = ""
    urls: List[str] = field(default_factory=list)


class HelmRepoCatalog:
    def __init__(self, name: str, uri: str, session: Optional[requests.Session] = None):
        self.name = name
        self.uri = uri.rstrip("/") + "/"
        self.session = session or requests.Session()
        self._index: Optional[Dict[str, Any]] = None

    def index(self) -> Dict[str, Any]:
        if self._index is None:
            url = urljoin(self.uri, "index.yaml")
            log.debug("reading catalog index %s", url)
            resp = self.session.get(url, timeout=DEFAULT_TIMEOUT)
            resp.raise_for_status()
            self._index = yaml.safe_load(resp.text) or {}
        return self._index

    def search(self, app_name: str) -> List[ChartEntry]:
        entries = (self.index().get("entries") or {}).get(app_name) or []
        if not entries:
            raise NotFoundError(f"Application {app_name} not found in catalog {self.name}")
        return [
            ChartEntry(
                name=e.get("name", app_name),
                version=str(e.get("version", "")),
                app_version=str(e.get("appVersion", "")),
                urls=list(e.get("urls") or []),
            )
            for e in entries
        ]

    def entry(self, app_name: str, version: str = "") -> ChartEntry:
        """The requested version, or the first (newest) entry in the index."""
        entries = self.search(app_name)
        if not version:
            return entries[0]
        for e in entries:
            if e.version == version or e.version == version.lstrip("v"):
                return e
        raise NotFoundError(f"Application {app_name} version {version} not found in catalog {self.name}")

    def fetch(self, entry: ChartEntry, dest: str | Path) -> Path:
        if not entry.urls:
            raise ChartDownloadError(f"chart {entry.name}-{entry.version} has no download URL")
        url = urljoin(self.uri, entry.urls[0])
        out = Path(dest) / f"{entry.name}-{entry.version}.tgz"
        log.debug("downloading %s to %s", url, out)
        try:
            resp = self.session.get(url, timeout=DEFAULT_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ChartDownloadError(f"could not download {url}: {exc}") from exc
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(resp.content)
        return out


class CatalogRegistry:
    """Catalog name -> catalog. The internal catalog is always present."""

    def __init__(self, catalogs: Iterable[Catalog] = (), session: Optional[requests.Session] = None):
        self.session = session
        self._catalogs: Dict[str, HelmRepoCatalog] = {
            INTERNAL_CATALOG: HelmRepoCatalog(INTERNAL_CATALOG, INTERNAL_CATALOG_URI, session),
        }
        for c in catalogs:
            self.add(c)

    def add(self, catalog: Catalog) -> HelmRepoCatalog:
        hc = HelmRepoCatalog(catalog.name, catalog.uri, self.session)
        self._catalogs[catalog.name] = hc
        return hc

    def register(self, catalog: HelmRepoCatalog) -> None:
        self._catalogs[catalog.name] = catalog

    def get(self, name: str) -> HelmRepoCatalog:
        try:
            return self._catalogs[name]
        except KeyError:
            raise NotFoundError(f"Catalog {name} not found") from None

    def names(self) -> List[str]:
        return sorted(self._catalogs)
