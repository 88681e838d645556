# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ignition/document.py
"""
Ignition v3.4 documents: files, directories, systemd units and users.

Only the subset the cluster bootstrap needs is modelled. Documents merge
with `merge(a, b)` and serialize to the JSON an Ignition-enabled host reads
on first boot.
"""
from __future__ import annotations

import base64
import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote_to_bytes

from ocne.errors import ConfigInvalidError

IGNITION_VERSION = "3.4.0"


def encode_data_url(text: str) -> str:
    return "data:," + quote(text, safe="")


def decode_data_url(source: str) -> str:
    if not source.startswith("data:"):
        raise ConfigInvalidError(f"unsupported ignition file source {source[:32]!r}")
    header, _, payload = source[len("data:"):].partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload).decode()
    return unquote_to_bytes(payload).decode()


@dataclass
class File:
    path: str
    contents: str = ""
    mode: int = 0o644
    user: str = ""
    group: str = ""
    overwrite: bool = True

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "path": self.path,
            "overwrite": self.overwrite,
            "mode": self.mode,
            "contents": {"source": encode_data_url(self.contents)},
        }
        if self.user:
            out["user"] = {"name": self.user}
        if self.group:
            out["group"] = {"name": self.group}
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "File":
        source = (d.get("contents") or {}).get("source") or "data:,"
        return cls(
            path=d["path"],
            contents=decode_data_url(source),
            mode=d.get("mode", 0o644),
            user=(d.get("user") or {}).get("name", ""),
            group=(d.get("group") or {}).get("name", ""),
            overwrite=d.get("overwrite", True),
        )


@dataclass
class Directory:
    path: str
    mode: int = 0o755

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "mode": self.mode}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Directory":
        return cls(path=d["path"], mode=d.get("mode", 0o755))


@dataclass
class Dropin:
    name: str
    contents: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "contents": self.contents}


@dataclass
class Unit:
    name: str
    enabled: Optional[bool] = None
    contents: Optional[str] = None
    dropins: List[Dropin] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.enabled is not None:
            out["enabled"] = self.enabled
        if self.contents is not None:
            out["contents"] = self.contents
        if self.dropins:
            out["dropins"] = [d.to_dict() for d in self.dropins]
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Unit":
        return cls(
            name=d["name"],
            enabled=d.get("enabled"),
            contents=d.get("contents"),
            dropins=[Dropin(x["name"], x.get("contents", "")) for x in d.get("dropins") or []],
        )


@dataclass
class User:
    name: str
    ssh_keys: List[str] = field(default_factory=list)
    password_hash: str = ""
    groups: List[str] = field(default_factory=list)
    shell: str = ""
    primary_group: str = ""
    system: bool = False
    no_create_home: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.ssh_keys:
            out["sshAuthorizedKeys"] = list(self.ssh_keys)
        if self.password_hash:
            out["passwordHash"] = self.password_hash
        if self.groups:
            out["groups"] = list(self.groups)
        if self.shell:
            out["shell"] = self.shell
        if self.primary_group:
            out["primaryGroup"] = self.primary_group
        if self.system:
            out["system"] = True
        if self.no_create_home:
            out["noCreateHome"] = True
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "User":
        return cls(
            name=d["name"],
            ssh_keys=list(d.get("sshAuthorizedKeys") or []),
            password_hash=d.get("passwordHash") or "",
            groups=list(d.get("groups") or []),
            shell=d.get("shell") or "",
            primary_group=d.get("primaryGroup") or "",
            system=bool(d.get("system")),
            no_create_home=bool(d.get("noCreateHome")),
        )


@dataclass
class Group:
    name: str
    system: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.system:
            out["system"] = True
        return out


@dataclass
class Ignition:
    files: List[File] = field(default_factory=list)
    directories: List[Directory] = field(default_factory=list)
    units: List[Unit] = field(default_factory=list)
    users: List[User] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)

    # ------------------------- builders -------------------------

    def add_file(self, f: File) -> "Ignition":
        if any(x.path == f.path for x in self.files):
            raise ConfigInvalidError(f"A file with path {f.path} is already defined")
        self.files.append(f)
        return self

    def add_directory(self, d: Directory) -> "Ignition":
        if any(x.path == d.path for x in self.directories):
            raise ConfigInvalidError(f"A directory with path {d.path} is already defined")
        self.directories.append(d)
        return self

    def add_user(self, u: User) -> "Ignition":
        if any(x.name == u.name for x in self.users):
            raise ConfigInvalidError(f"A user with name {u.name} is already defined")
        self.users.append(u)
        return self

    def add_group(self, g: Group) -> "Ignition":
        if any(x.name == g.name for x in self.groups):
            raise ConfigInvalidError(f"A group with name {g.name} is already defined")
        self.groups.append(g)
        return self

    def add_unit(self, unit: Unit) -> "Ignition":
        """Units merge by name, so adding one twice extends its drop-ins."""
        merged = merge(self, Ignition(units=[unit]))
        self.units = merged.units
        return self

    def file(self, path: str) -> Optional[File]:
        return next((f for f in self.files if f.path == path), None)

    def unit(self, name: str) -> Optional[Unit]:
        return next((u for u in self.units if u.name == name), None)

    # ------------------------- serialization -------------------------

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ignition": {"version": IGNITION_VERSION}}
        storage: Dict[str, Any] = {}
        if self.files:
            storage["files"] = [f.to_dict() for f in self.files]
        if self.directories:
            storage["directories"] = [d.to_dict() for d in self.directories]
        if storage:
            out["storage"] = storage
        if self.units:
            out["systemd"] = {"units": [u.to_dict() for u in self.units]}
        passwd: Dict[str, Any] = {}
        if self.users:
            passwd["users"] = [u.to_dict() for u in self.users]
        if self.groups:
            passwd["groups"] = [g.to_dict() for g in self.groups]
        if passwd:
            out["passwd"] = passwd
        return out

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode()

    def to_string(self) -> str:
        return self.to_bytes().decode()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ignition":
        version = (data.get("ignition") or {}).get("version", "")
        if not version.startswith("3."):
            raise ConfigInvalidError(f"unsupported ignition version {version!r}")
        storage = data.get("storage") or {}
        passwd = data.get("passwd") or {}
        return cls(
            files=[File.from_dict(f) for f in storage.get("files") or []],
            directories=[Directory.from_dict(d) for d in storage.get("directories") or []],
            units=[Unit.from_dict(u) for u in (data.get("systemd") or {}).get("units") or []],
            users=[User.from_dict(u) for u in passwd.get("users") or []],
            groups=[Group(g["name"], bool(g.get("system"))) for g in passwd.get("groups") or []],
        )

    @classmethod
    def from_bytes(cls, raw: bytes | str) -> "Ignition":
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ConfigInvalidError(f"could not parse ignition: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigInvalidError("ignition document must be a JSON object")
        return cls.from_dict(data)


def _merge_unit(a: Unit, b: Unit) -> Unit:
    out = copy.deepcopy(a)
    if b.enabled is not None:
        out.enabled = b.enabled
    if b.contents is not None:
        out.contents = b.contents
    for d in b.dropins:
        for i, existing in enumerate(out.dropins):
            if existing.name == d.name:
                out.dropins[i] = copy.deepcopy(d)
                break
        else:
            out.dropins.append(copy.deepcopy(d))
    return out


def _merge_user(a: User, b: User) -> User:
    out = copy.deepcopy(a)
    for k in b.ssh_keys:
        if k not in out.ssh_keys:
            out.ssh_keys.append(k)
    for g in b.groups:
        if g not in out.groups:
            out.groups.append(g)
    for attr in ("password_hash", "shell", "primary_group"):
        if getattr(b, attr):
            setattr(out, attr, getattr(b, attr))
    out.system = out.system or b.system
    out.no_create_home = out.no_create_home or b.no_create_home
    return out


def merge(a: Ignition, b: Ignition) -> Ignition:
    """
    Combine two documents without mutating either.

    Files and directories: b wins on a path collision.
    Units: merged by name, drop-ins appended (same-named drop-in replaced).
    Users: merged by name, SSH keys unioned.
    """
    out = copy.deepcopy(a)

    for f in b.files:
        out.files = [x for x in out.files if x.path != f.path]
        out.files.append(copy.deepcopy(f))

    for d in b.directories:
        out.directories = [x for x in out.directories if x.path != d.path]
        out.directories.append(copy.deepcopy(d))

    for u in b.units:
        for i, existing in enumerate(out.units):
            if existing.name == u.name:
                out.units[i] = _merge_unit(existing, u)
                break
        else:
            out.units.append(copy.deepcopy(u))

    for usr in b.users:
        for i, existing in enumerate(out.users):
            if existing.name == usr.name:
                out.users[i] = _merge_user(existing, usr)
                break
        else:
            out.users.append(copy.deepcopy(usr))

    for g in b.groups:
        if not any(x.name == g.name for x in out.groups):
            out.groups.append(copy.deepcopy(g))

    return out


def merge_all(*docs: Ignition) -> Ignition:
    ret = Ignition()
    for d in docs:
        ret = merge(ret, d)
    return ret
