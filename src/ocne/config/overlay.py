# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/config/overlay.py
from __future__ import annotations

from typing import Any, Dict


class ConfigOverlay:
    """
    Read-only layered view over a configuration object.

    Attribute reads return the override when one was given, otherwise the
    value from *base*. The base object is never touched, so callers can hand
    the same ClusterConfig to several overlays (e.g. the ephemeral
    management cluster) without copying it.
    """

    __slots__ = ("_base", "_overrides")

    def __init__(self, base: Any, **overrides: Any):
        object.__setattr__(self, "_base", base)
        object.__setattr__(self, "_overrides", dict(overrides))

    def __getattr__(self, item: str) -> Any:
        overrides: Dict[str, Any] = object.__getattribute__(self, "_overrides")
        if item in overrides:
            return overrides[item]
        return getattr(object.__getattribute__(self, "_base"), item)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is read-only")

    @property
    def base(self) -> Any:
        return object.__getattribute__(self, "_base")

    @property
    def overrides(self) -> Dict[str, Any]:
        return dict(object.__getattribute__(self, "_overrides"))

    def with_overrides(self, **more: Any) -> "ConfigOverlay":
        merged = self.overrides
        merged.update(more)
        return ConfigOverlay(self.base, **merged)

    def __repr__(self) -> str:
        return f"ConfigOverlay(base={type(self.base).__name__}, overrides={self.overrides!r})"
