# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/waiters/waiter.py
"""
Run blocking wait functions and report their progress.

Workers never write to the terminal. They push ProgressEvents onto a queue
and a single ProgressRenderer thread turns those into status lines.
"""
from __future__ import annotations

import itertools
import logging
import queue
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO

log = logging.getLogger("ocne")

STATE_STARTED = "started"
STATE_DONE = "done"
STATE_FAILED = "failed"

_SPINNER = "|/-\\"


@dataclass
class Waiter:
    message: str
    wait_function: Callable[[Any], Any]
    args: Any = None
    error: Optional[BaseException] = field(default=None, init=False)
    result: Any = field(default=None, init=False)


@dataclass(frozen=True)
class ProgressEvent:
    index: int
    message: str
    state: str
    error: str = ""


class ProgressRenderer:
    """
    Consumes ProgressEvents from one queue. On a terminal the in-flight
    waiters get a spinner line; otherwise only final states are printed.
    """

    def __init__(self, stream: Optional[TextIO] = None, quiet: bool = False, interval: float = 0.2):
        self.stream = stream or sys.stderr
        self.quiet = quiet
        self.interval = interval
        self.events: "queue.Queue[Optional[ProgressEvent]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._active: Dict[int, str] = {}
        self.finished: List[ProgressEvent] = []

    def _tty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def put(self, event: ProgressEvent) -> None:
        self.events.put(event)

    def start(self) -> "ProgressRenderer":
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name="progress-renderer", daemon=True)
            self._thread.start()
        return self

    def stop(self) -> None:
        if self._thread is None:
            return
        self.events.put(None)
        self._thread.join()
        self._thread = None

    def _write(self, text: str) -> None:
        if self.quiet:
            return
        self.stream.write(text)
        self.stream.flush()

    def _render_final(self, ev: ProgressEvent) -> None:
        clear = "\r\033[K" if self._tty() else ""
        if ev.state == STATE_DONE:
            self._write(f"{clear}[ok] {ev.message}\n")
        else:
            self._write(f"{clear}[failed] {ev.message}: {ev.error}\n")

    def _run(self) -> None:
        spin = itertools.cycle(_SPINNER)
        while True:
            try:
                ev = self.events.get(timeout=self.interval)
            except queue.Empty:
                if self._active and self._tty():
                    msgs = ", ".join(self._active.values())
                    self._write(f"\r\033[K{next(spin)} {msgs}")
                continue

            if ev is None:
                return
            if ev.state == STATE_STARTED:
                self._active[ev.index] = ev.message
                continue

            self._active.pop(ev.index, None)
            self.finished.append(ev)
            self._render_final(ev)


def _run_one(index: int, w: Waiter, renderer: ProgressRenderer) -> None:
    renderer.put(ProgressEvent(index, w.message, STATE_STARTED))
    try:
        w.result = w.wait_function(w.args)
    except Exception as exc:
        w.error = exc
        log.debug("waiter %r failed: %s", w.message, exc)
        renderer.put(ProgressEvent(index, w.message, STATE_FAILED, str(exc)))
        return
    renderer.put(ProgressEvent(index, w.message, STATE_DONE))


def _with_renderer(fn: Callable[[ProgressRenderer], None], renderer: Optional[ProgressRenderer]) -> None:
    own = renderer is None
    renderer = renderer or ProgressRenderer()
    renderer.start()
    try:
        fn(renderer)
    finally:
        if own:
            renderer.stop()


def wait_for(waiters: Sequence[Waiter], renderer: Optional[ProgressRenderer] = None) -> bool:
    """
    Run every waiter in parallel. All of them run to completion; returns True
    when any of them failed.
    """
    if not waiters:
        return False

    def run(r: ProgressRenderer) -> None:
        with ThreadPoolExecutor(max_workers=len(waiters), thread_name_prefix="waiter") as pool:
            futures = [pool.submit(_run_one, i, w, r) for i, w in enumerate(waiters)]
            for f in futures:
                f.result()

    _with_renderer(run, renderer)
    return any(w.error is not None for w in waiters)


def wait_for_serial(
    waiters: Sequence[Waiter],
    renderer: Optional[ProgressRenderer] = None,
    stop_on_error: bool = False,
) -> bool:
    """Like wait_for, one waiter at a time. Later waiters are skipped after a
    failure when *stop_on_error* is set."""

    def run(r: ProgressRenderer) -> None:
        for i, w in enumerate(waiters):
            _run_one(i, w, r)
            if stop_on_error and w.error is not None:
                return

    _with_renderer(run, renderer)
    return any(w.error is not None for w in waiters)
