# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/utils/jsonpatch.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Sequence


def _pointer(path: Sequence[str]) -> str:
    # RFC 6901 escaping for each segment
    segments = [str(p).replace("~", "~0").replace("/", "~1") for p in path]
    return "/" + "/".join(segments)


class JsonPatches:
    """
    Small builder for RFC 6902 patch lists. Methods chain:

        JsonPatches().replace(["spec", "version"], "v1.30.3").to_string()
    """

    def __init__(self) -> None:
        self.ops: List[Dict[str, Any]] = []

    def replace(self, path: Sequence[str], value: Any) -> "JsonPatches":
        self.ops.append({"op": "replace", "path": _pointer(path), "value": value})
        return self

    def add(self, path: Sequence[str], value: Any) -> "JsonPatches":
        self.ops.append({"op": "add", "path": _pointer(path), "value": value})
        return self

    def remove(self, path: Sequence[str]) -> "JsonPatches":
        self.ops.append({"op": "remove", "path": _pointer(path)})
        return self

    def extend(self, other: "JsonPatches | Iterable[Dict[str, Any]]") -> "JsonPatches":
        ops = other.ops if isinstance(other, JsonPatches) else list(other)
        self.ops.extend(ops)
        return self

    def __len__(self) -> int:
        return len(self.ops)

    def to_json(self) -> str:
        return json.dumps(self.ops, separators=(",", ":"))

    def to_string(self) -> str:
        """JSON text safe to embed inside a single-quoted shell argument."""
        return self.to_json().replace("'", "'\\''")

    __str__ = to_string
