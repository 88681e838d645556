# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/helm/cli_runner.py
from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from typing import Any, Dict, List, Optional

import yaml

from .errors import HelmError

log = logging.getLogger("ocne")


class HelmCliRunner:
    """
    A pragmatic wrapper around the `helm` CLI bound to one kubeconfig.
    - install/upgrade take a chart reference or a downloaded archive path.
    - Testable by mocking subprocess.run.
    """

    def __init__(self, kubeconfig: str | None = None, env: dict[str, str] | None = None):
        self.kubeconfig = kubeconfig
        self.env = env or {}

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["helm"]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        return cmd

    def _run(
        self,
        argv: List[str],
        allow_rc: set[int] | None = None,
        capture: bool = True,
    ) -> subprocess.CompletedProcess:
        allow_rc = allow_rc or {0}
        log.debug("$ %s", " ".join(argv))

        cp = subprocess.run(
            argv,
            check=False,
            text=True,
            capture_output=capture,
            env={**os.environ, **self.env} if self.env else None,
        )

        if cp.returncode not in allow_rc:
            stderr = getattr(cp, "stderr", "") or ""
            raise HelmError(f"helm failed (rc={cp.returncode}) for {argv!r}\n{stderr}")
        return cp

    def _values_args(self, values: Optional[Dict[str, Any]], values_file: str = "") -> list[str]:
        args: list[str] = []
        if values_file:
            args += ["-f", values_file]

        # inline values → write to temp file to pass to helm
        if values:
            with tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False) as tf:
                yaml.safe_dump(values, tf)  # type: ignore[arg-type]
                args += ["-f", tf.name]
        return args

    # ------------------------- releases -------------------------

    def list_releases(self, namespace: str | None = None) -> List[Dict[str, Any]]:
        argv = self._base() + ["list", "-o", "json"]
        argv += ["-n", namespace] if namespace else ["-A"]
        cp = self._run(argv)
        try:
            return json.loads(cp.stdout or "[]") or []
        except ValueError as exc:
            raise HelmError(f"could not parse helm list output: {exc}") from exc

    def release_exists(self, release: str, namespace: str) -> bool:
        return any(
            r.get("name") == release and r.get("namespace") == namespace for r in self.list_releases()
        )

    def install(
        self,
        release: str,
        namespace: str,
        chart: str,
        version: str | None = None,
        values: Optional[Dict[str, Any]] = None,
        values_file: str = "",
        wait: bool = False,
        timeout_seconds: int = 600,
    ) -> None:
        argv = (
            self._base()
            + ["install", release, chart, "-n", namespace]
            + self._values_args(values, values_file)
        )
        if version:
            argv += ["--version", version]
        if wait:
            argv += ["--wait", "--timeout", f"{timeout_seconds}s"]
        self._run(argv)

    def upgrade(
        self,
        release: str,
        namespace: str,
        chart: str,
        version: str | None = None,
        values: Optional[Dict[str, Any]] = None,
        values_file: str = "",
        wait: bool = False,
        timeout_seconds: int = 600,
    ) -> None:
        argv = (
            self._base()
            + ["upgrade", release, chart, "-n", namespace]
            + self._values_args(values, values_file)
        )
        if version:
            argv += ["--version", version]
        if wait:
            argv += ["--wait", "--timeout", f"{timeout_seconds}s"]
        self._run(argv)

    def uninstall(self, release: str, namespace: str) -> None:
        argv = self._base() + ["uninstall", release, "-n", namespace]
        self._run(argv)
