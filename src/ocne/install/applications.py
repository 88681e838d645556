# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/install/applications.py
"""
Ordered Helm release installation.

The list order is the dependency order; nothing is reordered. The first
application that fails stops the run because everything after it depends
on it.
"""
from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from ocne.config.models import Application
from ocne.errors import ConfigInvalidError, InstallError
from ocne.helm.catalog import CatalogRegistry
from ocne.helm.cli_runner import HelmCliRunner
from ocne.observers.dispatcher import EventBus
from ocne.observers.events import ApplicationFailed, ApplicationInstalled, ApplicationSkipped, new_ctx
from ocne.utils.retry import retry
from ocne.waiters.waiter import ProgressRenderer, Waiter, wait_for_serial

log = logging.getLogger("ocne")

DEFAULT_RETRIES = 2
DEFAULT_RETRY_DELAY = 5.0


@dataclass
class ApplicationDescription:
    application: Application
    pre_install: Optional[Callable[[], None]] = None
    # install over an existing release instead of skipping it
    force: bool = False


def _values(app: Application, working_dir: str = "") -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if app.config_from:
        p = Path(app.config_from).expanduser()
        if not p.is_absolute() and working_dir:
            p = Path(working_dir) / p
        try:
            loaded = yaml.safe_load(p.read_text()) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigInvalidError(f"cannot read configuration for {app.name} from {p}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigInvalidError(f"configuration for {app.name} in {p} is not a mapping")
        values.update(loaded)
    if app.config:
        values.update(app.config)
    return values


class ApplicationInstaller:
    def __init__(
        self,
        kube,
        helm: HelmCliRunner,
        catalogs: CatalogRegistry,
        *,
        bus: Optional[EventBus] = None,
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        working_dir: str = "",
    ):
        self.kube = kube
        self.helm = helm
        self.catalogs = catalogs
        self.bus = bus or EventBus()
        self.retries = retries
        self.retry_delay = retry_delay
        self.working_dir = working_dir
        self.run_ctx = new_ctx(env="install", context=getattr(helm, "kubeconfig", None))

    def install_one(self, desc: ApplicationDescription) -> bool:
        """Returns False when an existing release was left alone."""
        app = desc.application
        release = app.release_name()

        catalog = self.catalogs.get(app.catalog)
        entry = catalog.entry(app.name, app.version)
        values = _values(app, self.working_dir)

        exists = self.helm.release_exists(release, app.namespace)
        if exists and not desc.force:
            log.debug("release %s/%s already exists, skipping", app.namespace, release)
            self.bus.emit(ApplicationSkipped(name=app.name, namespace=app.namespace, release=release, **self.run_ctx))
            return False

        self.kube.ensure_namespace(app.namespace)

        if desc.pre_install is not None:
            desc.pre_install()

        attempts = {"n": 0}

        def on_retry(attempt: int, exc: Exception) -> None:
            log.warning("install of %s failed (attempt %d/%d): %s", app.name, attempt, self.retries, exc)

        @retry(retries=self.retries, delay=self.retry_delay, on_retry=on_retry)
        def _install() -> None:
            attempts["n"] += 1
            with tempfile.TemporaryDirectory(prefix="ocne-chart-") as tmp:
                archive = catalog.fetch(entry, tmp)
                op = self.helm.upgrade if exists else self.helm.install
                op(release, app.namespace, str(archive), values=values)

        _install()
        self.bus.emit(
            ApplicationInstalled(
                name=app.name, namespace=app.namespace, release=release, attempts=attempts["n"], **self.run_ctx
            )
        )
        return True

    def install(
        self,
        apps: Sequence[ApplicationDescription],
        quiet: bool = False,
        renderer: Optional[ProgressRenderer] = None,
    ) -> None:
        waiters: List[Waiter] = [
            Waiter(
                message=f"Installing {d.application.name} into {d.application.namespace}",
                wait_function=self.install_one,
                args=d,
            )
            for d in apps
        ]
        own = renderer is None
        renderer = renderer or ProgressRenderer(quiet=quiet)
        try:
            failed = wait_for_serial(waiters, renderer.start(), stop_on_error=True)
        finally:
            if own:
                renderer.stop()
        if not failed:
            return

        w = next(w for w in waiters if w.error is not None)
        app = w.args.application
        log.error("Failed to install %s: %s", app.name, w.error)
        self.bus.emit(ApplicationFailed(name=app.name, error=str(w.error), **self.run_ctx))
        raise InstallError("Could not install all applications") from w.error

