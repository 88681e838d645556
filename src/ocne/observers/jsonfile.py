# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/observers/jsonfile.py
from __future__ import annotations

import json
import threading
from pathlib import Path

from .events import BaseEvent


class JsonFileObserver:
    """Append events as JSON lines; waiters emit from worker threads."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def notify(self, event: BaseEvent) -> None:
        line = json.dumps({"type": event.__class__.__name__, **event.dict()}, default=str)
        with self._lock, self.path.open("a") as f:
            f.write(line + "\n")
