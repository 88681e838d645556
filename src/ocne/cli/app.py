# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/cli/app.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import typer

from ocne.config.loader import load_config
from ocne.config.models import ClusterConfig
from ocne.errors import ConfigInvalidError
from ocne.logging.log import init_logging
from ocne.observers.console import ConsoleObserver
from ocne.observers.dispatcher import EventBus
from ocne.observers.events import ImageUploaded, new_ctx
from ocne.observers.jsonfile import JsonFileObserver
from ocne.observers.logger import LoggerObserver
from ocne.olvm.driver import OlvmDriver
from ocne.olvm.resources import get_ca
from ocne.olvm.template import render_cluster_resources
from ocne.ovirt.client import OvirtClient
from ocne.ovirt.credentials import Credentials
from ocne.ovirt.upload import import_image

log = logging.getLogger("ocne")

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Oracle Cloud Native Environment clusters on Oracle Linux Virtualization Manager")
cluster_app = typer.Typer(help="Create, upgrade and delete clusters")
image_app = typer.Typer(help="Manage OCK boot images")
app.add_typer(cluster_app, name="cluster")
app.add_typer(image_app, name="image")

ConfigOpt = typer.Option(None, "--config", "-c", help="Cluster configuration file")
KubeconfigOpt = typer.Option("", "--kubeconfig", help="Management cluster kubeconfig")
VerboseOpt = typer.Option(False, "--verbose", "-v", help="Debug output on the console")
QuietOpt = typer.Option(False, "--quiet", help="No progress output")


def _bus(verbose: bool, quiet: bool = False) -> EventBus:
    logger, run_id, _ = init_logging(verbose=verbose, quiet=quiet)
    observers = [
        LoggerObserver(logger),
        JsonFileObserver(Path.home() / ".ocne" / "logs" / f"{run_id}.jsonl"),
    ]
    if verbose:
        observers.append(ConsoleObserver())
    return EventBus(observers=observers)


def _load(config: Optional[Path], quiet: bool) -> ClusterConfig:
    overrides = {"quiet": True} if quiet else {}
    return load_config(config, **overrides)


def _run(fn: Callable[[], None]) -> None:
    """Run a command body; failures become `Error: <msg>` and exit code 1."""
    try:
        fn()
    except typer.Exit:
        raise
    except Exception as exc:
        log.debug("command failed", exc_info=exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)


# ------------------------------------------------------------------------------
# cluster
# ------------------------------------------------------------------------------

@cluster_app.command("start")
def cluster_start(
    config: Optional[Path] = ConfigOpt,
    kubeconfig: str = KubeconfigOpt,
    verbose: bool = VerboseOpt,
    quiet: bool = QuietOpt,
):
    """Create a cluster and install its applications."""
    bus = _bus(verbose, quiet)

    def body() -> None:
        driver = OlvmDriver(_load(config, quiet), kubeconfig=kubeconfig, bus=bus)
        try:
            driver.start()
            driver.post_start()
        finally:
            driver.close()
        typer.echo(driver.post_install_message())

    _run(body)


@cluster_app.command("stage")
def cluster_stage(
    version: str = typer.Option(..., "--version", help="Target Kubernetes version"),
    config: Optional[Path] = ConfigOpt,
    kubeconfig: str = KubeconfigOpt,
    verbose: bool = VerboseOpt,
):
    """Prepare a cluster for an upgrade and print the patch commands."""
    bus = _bus(verbose)

    def body() -> None:
        driver = OlvmDriver(_load(config, False), kubeconfig=kubeconfig, bus=bus)
        path, help_text, changed = driver.stage(version)
        if not changed or not help_text:
            typer.echo(f"Cluster {driver.cc.name} has nothing to stage for {version}")
        else:
            typer.echo(help_text, nl=False)
        typer.echo(f"Workload cluster kubeconfig: {path}")

    _run(body)


@cluster_app.command("delete")
def cluster_delete(
    config: Optional[Path] = ConfigOpt,
    kubeconfig: str = KubeconfigOpt,
    verbose: bool = VerboseOpt,
):
    """Delete a cluster and the credentials stored for it."""
    bus = _bus(verbose)

    def body() -> None:
        driver = OlvmDriver(_load(config, False), kubeconfig=kubeconfig, bus=bus)
        try:
            driver.delete()
        finally:
            driver.close()
        typer.echo(f"Cluster {driver.cc.name} deleted")

    _run(body)


@cluster_app.command("template")
def cluster_template(
    config: Optional[Path] = ConfigOpt,
    verbose: bool = VerboseOpt,
):
    """Print the Cluster API resources generated for a configuration."""
    init_logging(verbose=verbose)
    _run(lambda: typer.echo(render_cluster_resources(_load(config, False)), nl=False))


# ------------------------------------------------------------------------------
# image
# ------------------------------------------------------------------------------

@image_app.command("upload")
def image_upload(
    file: Path = typer.Option(..., "--file", "-f", help="OCK image in qcow2 format"),
    config: Optional[Path] = ConfigOpt,
    verbose: bool = VerboseOpt,
):
    """Upload a boot image into an oVirt storage domain as a disk."""
    bus = _bus(verbose)

    def body() -> None:
        cc = _load(config, False)
        olvm = cc.olvm
        if not olvm.olvm_ock.disk_name or not olvm.olvm_ock.storage_domain_name:
            raise ConfigInvalidError("providers.olvm.olvmOCK needs diskName and storageDomainName")
        api = olvm.olvm_api_server
        if not api.server_url:
            raise ConfigInvalidError("providers.olvm.olvmOvirtAPIServer.serverURL is required")

        ca = None if api.insecure_skip_tls_verify else get_ca(olvm, cc.working_directory).encode()
        client = OvirtClient(
            api.server_url,
            Credentials.from_env(),
            ca_pem=ca,
            insecure=api.insecure_skip_tls_verify,
        ).connect()

        disk = import_image(
            client,
            file,
            olvm.olvm_ock.disk_name,
            olvm.olvm_ock.storage_domain_name,
            disk_size=olvm.olvm_ock.disk_size,
        )
        bus.emit(
            ImageUploaded(
                disk_name=disk.name,
                disk_id=disk.id,
                storage_domain=olvm.olvm_ock.storage_domain_name,
                **new_ctx("image", api.server_url),
            )
        )
        typer.echo(f"Uploaded {file} to disk {disk.name} ({disk.id})")

    _run(body)
