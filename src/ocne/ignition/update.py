# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ignition/update.py
"""
Turn an ignition delta into a JSON patch against the object that embeds it.

The control plane object keeps its ignition as a JSON string somewhere in
its spec. update_ignition() reads that string, applies an IgnitionUpdate
and returns the patch that writes the result back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from ocne.utils.jsonpatch import JsonPatches
from .document import Ignition, File, Unit, merge

log = logging.getLogger("ocne")


@dataclass
class IgnitionUpdate:
    add_files: List[File] = field(default_factory=list)
    add_units: List[Unit] = field(default_factory=list)
    remove_files: List[str] = field(default_factory=list)
    remove_directories: List[str] = field(default_factory=list)
    # unit name -> drop-in names
    remove_unit_dropins: Dict[str, List[str]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.add_files or self.add_units or self.remove_files or self.remove_directories or self.remove_unit_dropins
        )


def _lookup(obj: Mapping[str, Any], path: Sequence[str]) -> Any:
    cur: Any = obj
    for p in path:
        if not isinstance(cur, Mapping) or p not in cur:
            return None
        cur = cur[p]
    return cur


def apply_update(ign: Ignition, update: IgnitionUpdate) -> Ignition:
    out = merge(ign, Ignition(files=list(update.add_files), units=list(update.add_units)))

    if update.remove_files:
        out.files = [f for f in out.files if f.path not in update.remove_files]

    if update.remove_directories:
        prefixes = tuple(d.rstrip("/") + "/" for d in update.remove_directories)
        out.directories = [d for d in out.directories if d.path not in update.remove_directories]
        out.files = [f for f in out.files if not f.path.startswith(prefixes)]

    for unit_name, dropins in update.remove_unit_dropins.items():
        unit = out.unit(unit_name)
        if unit is None:
            continue
        unit.dropins = [d for d in unit.dropins if d.name not in dropins]

    return out


def update_ignition(obj: Mapping[str, Any], update: IgnitionUpdate, *path: str) -> JsonPatches:
    """
    Patches that rewrite the ignition string found at *path* in *obj*.

    An absent field is treated as an empty document and added; an update that
    changes nothing yields no patches.
    """
    patches = JsonPatches()
    if not path:
        raise ValueError("a path to the ignition field is required")

    current = _lookup(obj, path)
    if current:
        ign = Ignition.from_bytes(current)
    else:
        ign = Ignition()

    updated = apply_update(ign, update)
    if updated.to_dict() == ign.to_dict():
        log.debug("ignition at %s is already up to date", "/".join(path))
        return patches

    if current is None:
        # the parent may be missing too; add the deepest existing level
        depth = len(path)
        while depth > 1 and _lookup(obj, path[: depth - 1]) is None:
            depth -= 1
        value: Any = updated.to_string()
        for p in reversed(path[depth:]):
            value = {p: value}
        patches.add(list(path[:depth]), value)
    else:
        patches.replace(list(path), updated.to_string())
    return patches
