# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ovirt/credentials.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ocne.errors import ConfigInvalidError

ENV_USERNAME = "OCNE_OLVM_USERNAME"
ENV_PASSWORD = "OCNE_OLVM_PASSWORD"
ENV_SCOPE = "OCNE_OLVM_SCOPE"

USERNAME_KEY = "username"
PASSWORD_KEY = "password"
SCOPE_KEY = "scope"


@dataclass(frozen=True)
class Credentials:
    """oVirt credentials. Held in memory only."""

    username: str
    password: str = field(repr=False)
    scope: str

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Credentials":
        env = os.environ if environ is None else environ

        def need(var: str, what: str) -> str:
            value = env.get(var, "")
            if not value:
                raise ConfigInvalidError(f"Missing environment variable {var} used to specify OLVM {what}")
            return value

        return cls(
            username=need(ENV_USERNAME, "username"),
            password=need(ENV_PASSWORD, "password"),
            scope=need(ENV_SCOPE, "scope"),
        )

    def secret_data(self) -> Dict[str, str]:
        return {
            USERNAME_KEY: self.username,
            PASSWORD_KEY: self.password,
            SCOPE_KEY: self.scope,
        }
