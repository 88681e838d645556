# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/olvm/logscanner.py
"""
Surface OLVM controller errors while a cluster comes up.

The controller logs one message per timestamped line, continued by
untimestamped lines (stack traces, wrapped YAML). MessageDispatcher groups
them into blocks and LogHandler prints each distinct error once.

Fields of a controller log line are TAB separated:

    timestamp  level  caller  error-text  extra
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Callable, Iterable, List, Optional, Pattern, Set

from ocne.execution.runner import CommandRunner

log = logging.getLogger("ocne")

TIMESTAMP_START = r"^\d{4}-\d{2}-\d{2}T"

# the first reconcile always races the OLVMCluster creation
DEFAULT_TOLERATIONS = [r'OLVMCluster\.infrastructure\.cluster\.x-k8s\.io \\".*\\" not found']

MIN_FIELDS = 4
ERROR_FIELD = 3


class LogHandler:
    """Emits the first block seen for each distinct error text."""

    def __init__(
        self,
        tolerations: Optional[Iterable[str]] = None,
        emit: Optional[Callable[[str], None]] = None,
    ):
        self.tolerations: List[Pattern[str]] = [re.compile(t) for t in (tolerations or [])]
        self.seen: Set[str] = set()
        self._emit = emit or (lambda block: log.error("Error with OLVM Cluster API provider:\n%s", block))

    def _tolerated(self, line: str) -> bool:
        return any(t.search(line) for t in self.tolerations)

    def handle(self, lines: List[str]) -> bool:
        """Returns True when the block was emitted."""
        if not lines:
            return False
        first = lines[0]
        if "ERROR" not in first or self._tolerated(first):
            return False

        parts = first.split("\t")
        if len(parts) < MIN_FIELDS:
            log.debug("controller error line has %d fields, ignoring: %s", len(parts), first)
            return False

        key = parts[ERROR_FIELD].strip()
        if key in self.seen:
            return False
        self.seen.add(key)
        self._emit("\n".join(lines))
        return True


class MessageDispatcher:
    """Accumulates lines into blocks that begin with *start_pattern*."""

    def __init__(self, handler: LogHandler, start_pattern: str = TIMESTAMP_START):
        self.handler = handler
        self.start = re.compile(start_pattern)
        self.current: List[str] = []

    def dispatch(self, line: str) -> None:
        line = line.rstrip("\n")
        if self.start.search(line) and self.current:
            self.handler.handle(self.current)
            self.current = []
        self.current.append(line)

    def flush(self) -> None:
        if self.current:
            self.handler.handle(self.current)
            self.current = []


class LogFollower:
    """
    Runs `kubectl logs -f` against a Deployment on a background thread
    and feeds its output through a MessageDispatcher until stopped.
    """

    def __init__(
        self,
        kubeconfig: str,
        namespace: str,
        deployment: str,
        *,
        runner: Optional[CommandRunner] = None,
        tolerations: Optional[Iterable[str]] = None,
    ):
        self.kubeconfig = kubeconfig
        self.namespace = namespace
        self.deployment = deployment
        self.runner = runner or CommandRunner(logger=log, label="logs")
        self.dispatcher = MessageDispatcher(LogHandler(tolerations if tolerations is not None else DEFAULT_TOLERATIONS))
        self._proc = None
        self._thread: Optional[threading.Thread] = None

    def command(self) -> List[str]:
        return [
            "kubectl", "logs", "-f",
            f"deployment/{self.deployment}",
            "-n", self.namespace,
            "--kubeconfig", self.kubeconfig,
        ]

    def _pump(self) -> None:
        for line in self._proc.stdout:
            self.dispatcher.dispatch(line)
        self.dispatcher.flush()

    def start(self) -> "LogFollower":
        self._proc = self.runner.popen(self.command())
        self._thread = threading.Thread(target=self._pump, name=f"logs-{self.deployment}", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._proc = None
        self._thread = None

    def __enter__(self) -> "LogFollower":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
