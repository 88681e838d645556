# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

# per-run trace files kept under the log directory
KEEP_RUNS = 20

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def prune_logs(base_dir: Path, name: str, keep: int = KEEP_RUNS) -> list[Path]:
    """Delete all but the newest *keep* run logs. Returns what was removed."""
    runs = sorted(base_dir.glob(f"{name}-*.log"), key=lambda p: p.stat().st_mtime, reverse=True)
    removed = []
    for old in runs[keep:]:
        try:
            old.unlink()
            removed.append(old)
        except OSError:
            continue
    return removed


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "ocne",
    verbose: bool = False,
    quiet: bool = False,
    keep: int = KEEP_RUNS,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - a DEBUG trace file per run under ~/.ocne/logs (oldest pruned)
      - a console handler: INFO, DEBUG with --verbose, WARNING with --quiet
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".ocne" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)
    prune_logs(base_dir, name, keep=max(keep - 1, 0))

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    ch = logging.StreamHandler()
    if verbose:
        ch.setLevel(logging.DEBUG)
    elif quiet:
        ch.setLevel(logging.WARNING)
    else:
        ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("=== ocne run started ===")
    logger.debug("run_id=%s log_file=%s", run_id, log_path)

    return logger, run_id, log_path
