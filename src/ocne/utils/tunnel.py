# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/utils/tunnel.py
from __future__ import annotations

import logging
import queue
import subprocess
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from ocne.errors import OcneError

log = logging.getLogger("ocne")


@dataclass
class SshTunnel:
    """
    Local port forward to a remote host, owned by a supervisor thread.

    start() blocks until the supervisor has launched `ssh -N -L` and handed
    the child back; stop() kills the child and joins the supervisor.
    """

    host: str
    local_port: int
    remote_port: int
    user: Optional[str] = None
    remote_host: str = "127.0.0.1"
    extra_args: List[str] = field(default_factory=list)

    _proc: Optional[subprocess.Popen] = field(default=None, init=False, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def command(self) -> List[str]:
        target = f"{self.user}@{self.host}" if self.user else self.host
        return [
            "ssh",
            "-N",
            "-o", "ExitOnForwardFailure=yes",
            "-L", f"{self.local_port}:{self.remote_host}:{self.remote_port}",
            *self.extra_args,
            target,
        ]

    def _supervise(self, handoff: "queue.Queue[object]") -> None:
        try:
            proc = subprocess.Popen(
                self.command(),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            handoff.put(exc)
            return

        handoff.put(proc)
        _, stderr = proc.communicate()
        log.debug("ssh tunnel to %s exited rc=%s %s", self.host, proc.returncode, (stderr or "").strip())

    def start(self, timeout: float = 30.0) -> subprocess.Popen:
        if self._proc is not None:
            return self._proc

        handoff: "queue.Queue[object]" = queue.Queue(maxsize=1)
        self._thread = threading.Thread(
            target=self._supervise, args=(handoff,), name=f"ssh-tunnel-{self.host}", daemon=True,
        )
        self._thread.start()

        try:
            got = handoff.get(timeout=timeout)
        except queue.Empty as exc:
            raise OcneError(f"ssh tunnel to {self.host} did not start within {timeout:.0f}s") from exc
        if isinstance(got, BaseException):
            raise OcneError(f"could not start ssh tunnel to {self.host}: {got}") from got

        self._proc = got  # type: ignore[assignment]
        log.debug("ssh tunnel localhost:%d -> %s:%d via %s", self.local_port, self.remote_host, self.remote_port, self.host)
        return self._proc

    def stop(self) -> None:
        if self._proc is None:
            return
        if self._proc.poll() is None:
            self._proc.kill()
        if self._thread is not None:
            self._thread.join(timeout=10)
        self._proc = None
        self._thread = None
