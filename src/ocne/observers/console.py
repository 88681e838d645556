# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/observers/console.py
from typing import TextIO, Optional
import sys

from .events import BaseEvent

_SKIP = ("ts", "run_id", "env", "context")


class ConsoleObserver:
    """One line per event, for --verbose runs."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _SKIP)
        print(f"[{d['ts']}] {k} env={d['env']} {{{data}}}", file=self.stream or sys.stdout)
