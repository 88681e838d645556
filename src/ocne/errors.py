# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/errors.py
from __future__ import annotations

from typing import Optional


class OcneError(RuntimeError):
    """Base class for cluster lifecycle failures."""


class ConfigInvalidError(OcneError):
    """User input failed validation. Raised before any side effects."""


class TransportError(OcneError):
    """HTTP/TLS/DNS failure talking to an external endpoint."""


class RemoteStatusError(OcneError):
    """The virtualization manager answered with a non-2xx status."""

    def __init__(self, message: str, status: int, body: bytes = b""):
        super().__init__(message)
        self.status = status
        self.body = body


class NotFoundError(OcneError):
    """A lookup did not find the requested object."""


class PollTimeoutError(OcneError, TimeoutError):
    """A polling loop ran out of budget before its predicate succeeded."""


class InstallError(OcneError):
    """A required controller or application did not install or become ready."""


def is_not_found(exc: Optional[BaseException]) -> bool:
    """
    True when *exc*, or anything in its cause chain, is a NotFoundError.
    """
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, NotFoundError):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False
