# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ovirt/upload.py
"""
Import a boot image into an oVirt storage domain.

Flow: storage domain lookup -> create disk -> wait for disk `ok` ->
create upload ImageTransfer -> wait for `transferring` -> chunked PUT ->
wait for the transferred byte count -> finalize -> wait for
`finished_success`.

Any failure after the disk exists triggers an explicit cleanup (cancel the
transfer, delete the ImageTransfer, delete the Disk) before the original
error is re-raised.
"""
from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Callable, Optional

from ocne.errors import ConfigInvalidError, OcneError, is_not_found
from ocne.utils.retry import Poll, linear_retry_timeout
from .client import OvirtClient
from .models import CreateDiskRequest, CreateImageTransferRequest, Disk, ImageTransfer

log = logging.getLogger("ocne")

DISK_STATUS_OK = "ok"
PHASE_TRANSFERRING = "transferring"
PHASE_CANCELLED = "cancelled"
PHASE_FINISHED = "finished_success"
PHASE_FAILED = "finished_failure"

DEFAULT_WAIT_TIMEOUT = 2 * 60
DEFAULT_WAIT_DELAY = 2.0

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgtp]?)(i?b)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "k": 1 << 10, "m": 1 << 20, "g": 1 << 30, "t": 1 << 40, "p": 1 << 50}


def parse_size(value: str) -> int:
    """
    Human size to bytes using binary multiples ("16G", "16GB", "16GiB" are
    all 16 * 1024**3).
    """
    m = _SIZE_RE.match(value or "")
    if not m:
        raise ConfigInvalidError(f"Error, DiskSize value {value} is an invalid format")
    number, unit, _ = m.groups()
    return int(float(number) * _SIZE_UNITS[unit.lower()])


class _Waits:
    def __init__(self, timeout: float, delay: float, sleep: Callable[[float], None]):
        self.timeout = timeout
        self.delay = delay
        self.sleep = sleep

    def poll(self, predicate: Callable[[], Poll]):
        return linear_retry_timeout(predicate, timeout=self.timeout, delay=self.delay, sleep=self.sleep)


def _wait_for_disk_ok(client: OvirtClient, disk_id: str, waits: _Waits) -> Disk:
    log.info("Waiting for disk status to be OK")

    def check() -> Poll:
        disk = client.get_disk(disk_id)
        if disk.status == DISK_STATUS_OK:
            return Poll.ok(disk)
        return Poll.again(OcneError(f"disk {disk_id} status is {disk.status or 'unknown'}"))

    return waits.poll(check)


def _wait_for_phase(client: OvirtClient, transfer_id: str, phase: str, waits: _Waits) -> ImageTransfer:
    log.info("Waiting for image transfer phase %s", phase)

    def check() -> Poll:
        it = client.get_image_transfer(transfer_id)
        if it.phase == phase:
            return Poll.ok(it)
        if it.phase == PHASE_FAILED and phase != PHASE_FAILED:
            return Poll.fail(OcneError(f"image transfer {transfer_id} failed"))
        return Poll.again(
            OcneError(f"waiting for image transfer phase {phase}, current phase is {it.phase or 'unknown'}")
        )

    return waits.poll(check)


def _wait_for_transferred(client: OvirtClient, transfer_id: str, total: int, waits: _Waits) -> None:
    def check() -> Poll:
        it = client.get_image_transfer(transfer_id)
        if it.transferred == total:
            return Poll.ok()
        return Poll.again(OcneError(f"image transfer reports {it.transferred} of {total} bytes"))

    waits.poll(check)
    log.debug("image transfer byte count matches %d", total)


def cleanup_transfer(
    client: OvirtClient,
    transfer_id: Optional[str],
    disk_id: str,
    waits: Optional[_Waits] = None,
) -> None:
    """
    Best-effort removal of a failed import. Every step is attempted; failures
    are logged.
    """
    waits = waits or _Waits(DEFAULT_WAIT_TIMEOUT, DEFAULT_WAIT_DELAY, time.sleep)
    log.info("Cleaning up image transfer due to failure")

    if transfer_id:
        try:
            client.image_transfer_action(transfer_id, "cancel")
            _wait_for_phase(client, transfer_id, PHASE_CANCELLED, waits)
        except Exception as exc:
            if not is_not_found(exc):
                log.warning("cancel of image transfer %s failed: %s", transfer_id, exc)
        try:
            client.delete_image_transfer(transfer_id)
        except Exception as exc:
            if not is_not_found(exc):
                log.warning("delete of image transfer %s failed: %s", transfer_id, exc)

    try:
        client.delete_disk(disk_id)
    except Exception as exc:
        log.warning("delete of disk %s failed: %s", disk_id, exc)


def import_image(
    client: OvirtClient,
    image_path: str | Path,
    disk_name: str,
    storage_domain_name: str,
    *,
    disk_size: str = "",
    disk_format: str = "cow",
    chunk_size: Optional[int] = None,
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
    wait_delay: float = DEFAULT_WAIT_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> Disk:
    path = Path(image_path).expanduser().resolve()
    try:
        total = path.stat().st_size
    except OSError as exc:
        raise ConfigInvalidError(f"cannot read image {path}: {exc}") from exc
    if total <= 0:
        raise ConfigInvalidError(f"image {path} is empty")

    provisioned = parse_size(disk_size) if disk_size else total
    waits = _Waits(wait_timeout, wait_delay, sleep)

    log.info("Starting upload of image `%s` to disk `%s` in storage domain `%s`", path, disk_name, storage_domain_name)

    sd = client.get_storage_domain(storage_domain_name)
    disk = client.create_disk(
        CreateDiskRequest(
            name=disk_name,
            provisioned_size=provisioned,
            storage_domain_id=sd.id,
            format=disk_format,
        )
    )

    transfer_id: Optional[str] = None
    try:
        disk = _wait_for_disk_ok(client, disk.id, waits)

        it = client.create_image_transfer(
            CreateImageTransferRequest(
                disk_id=disk.id,
                name=f"Upload image to disk {disk.name}, ID {disk.id}",
            )
        )
        transfer_id = it.id

        it = _wait_for_phase(client, transfer_id, PHASE_TRANSFERRING, waits)
        url = it.transfer_url or it.proxy_url
        if not url:
            raise OcneError(f"image transfer {transfer_id} has no transfer URL")

        with path.open("rb") as reader:
            kwargs = {"chunk_size": chunk_size} if chunk_size else {}
            client.upload(url, reader, total, **kwargs)

        _wait_for_transferred(client, transfer_id, total, waits)
        client.image_transfer_action(transfer_id, "finalize")
        _wait_for_phase(client, transfer_id, PHASE_FINISHED, waits)
    except Exception:
        cleanup_transfer(client, transfer_id, disk.id, waits)
        raise

    log.info("Successfully uploaded image to disk %s", disk.name)
    return disk
