# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/k8s/kubeconfig.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

log = logging.getLogger("ocne")

ENV_TEST_KUBECONFIG = "TEST_KUBECONFIG"
ENV_KUBECONFIG = "KUBECONFIG"


def default_kubeconfig() -> Path:
    return Path.home() / ".kube" / "config"


def resolve_kubeconfig(flag: str = "", environ: Optional[Mapping[str, str]] = None) -> Tuple[str, bool]:
    """
    Pick the kubeconfig to use and report whether it is the implicit default.

    Precedence: explicit flag > TEST_KUBECONFIG > KUBECONFIG > ~/.kube/config.
    """
    env = os.environ if environ is None else environ
    if flag:
        return str(Path(flag).expanduser()), False
    for var in (ENV_TEST_KUBECONFIG, ENV_KUBECONFIG):
        val = env.get(var, "")
        if val:
            log.debug("using kubeconfig from %s=%s", var, val)
            return str(Path(val).expanduser()), False
    return str(default_kubeconfig()), True


def kubeconfig_path_for_cluster(cluster_name: str) -> Path:
    return Path.home() / ".kube" / f"kubeconfig.{cluster_name}"


def write_kubeconfig(path: str | Path, contents: str | bytes) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = contents.encode() if isinstance(contents, str) else contents
    p.write_bytes(data)
    p.chmod(0o700)
    log.debug("wrote kubeconfig %s", p)
    return p
