# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/capi/move.py
from __future__ import annotations

import logging
from typing import Optional

from ocne.errors import OcneError
from ocne.execution.runner import CommandRunner

log = logging.getLogger("ocne")


def move_cluster(
    from_kubeconfig: str,
    to_kubeconfig: str,
    namespace: str,
    runner: Optional[CommandRunner] = None,
    dry_run: bool = False,
) -> None:
    """
    Hand the Cluster API objects in *namespace* over to another management
    cluster with `clusterctl move`.
    """
    runner = runner or CommandRunner(label="clusterctl")
    cmd = [
        "clusterctl", "move",
        "--kubeconfig", from_kubeconfig,
        "--to-kubeconfig", to_kubeconfig,
        "-n", namespace,
    ]
    if dry_run:
        cmd.append("--dry-run")

    log.info("Moving Cluster API resources in %s from %s to %s", namespace, from_kubeconfig, to_kubeconfig)
    result = runner.run(cmd, capture_output=True, check=False)
    if result.returncode != 0:
        raise OcneError(
            f"clusterctl move from {from_kubeconfig} to {to_kubeconfig} failed: {(result.stderr or '').strip()}"
        )
