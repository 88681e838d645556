# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/k8s/resources.py
"""
Unstructured resource handling: parse multi-document YAML, then create,
get, list, patch and delete objects by apiVersion/kind through the
dynamic client.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import yaml
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from ocne.errors import ConfigInvalidError, NotFoundError, OcneError
from ocne.utils.jsonpatch import JsonPatches

log = logging.getLogger("ocne")

Obj = Dict[str, Any]


def parse(text: str) -> List[Obj]:
    """
    Load every `---` separated document. Empty documents are skipped; a
    document without apiVersion or kind is rejected.
    """
    try:
        docs = list(yaml.safe_load_all(text or ""))
    except yaml.YAMLError as exc:
        raise ConfigInvalidError(f"could not parse resources: {exc}") from exc

    out: List[Obj] = []
    for i, doc in enumerate(docs):
        if not doc:
            continue
        if not isinstance(doc, dict):
            raise ConfigInvalidError(f"resource document {i} is not a mapping")
        if not doc.get("apiVersion") or not doc.get("kind"):
            raise ConfigInvalidError(f"resource document {i} is missing apiVersion or kind")
        out.append(doc)
    return out


def find_in(objs: Iterable[Obj], predicate: Callable[[Obj], bool]) -> Obj:
    for o in objs:
        if predicate(o):
            return o
    raise NotFoundError("no matching resource found")


def metadata(obj: Obj) -> Obj:
    return obj.get("metadata") or {}


def name_of(obj: Obj) -> str:
    return metadata(obj).get("name", "")


def namespace_of(obj: Obj, default: str = "") -> str:
    return metadata(obj).get("namespace") or default


def labels_of(obj: Obj) -> Dict[str, str]:
    return metadata(obj).get("labels") or {}


def get_path(obj: Obj, *path: str) -> Any:
    cur: Any = obj
    for p in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(p)
    return cur


def set_path(obj: Obj, value: Any, *path: str) -> None:
    cur = obj
    for p in path[:-1]:
        cur = cur.setdefault(p, {})
    cur[path[-1]] = value


class ResourceApplier:
    """
    CRUD over unstructured objects. REST mappings resolved through discovery
    are kept for the life of the applier.
    """

    def __init__(self, dynamic):
        self.dynamic = dynamic
        self._mappings: Dict[Tuple[str, str], Any] = {}

    def _resource(self, api_version: str, kind: str):
        key = (api_version, kind)
        if key not in self._mappings:
            try:
                self._mappings[key] = self.dynamic.resources.get(api_version=api_version, kind=kind)
            except ResourceNotFoundError as exc:
                raise NotFoundError(f"resource type {api_version}/{kind} not found") from exc
        return self._mappings[key]

    def create(self, obj: Obj, namespace: Optional[str] = None) -> Obj:
        res = self._resource(obj["apiVersion"], obj["kind"])
        ns = namespace or namespace_of(obj) or None
        try:
            created = res.create(body=obj, namespace=ns)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"{obj['kind']} {name_of(obj)}: not found") from exc
            raise
        return created.to_dict() if hasattr(created, "to_dict") else created

    def create_if_not_exists(self, obj: Obj, namespace: Optional[str] = None) -> bool:
        """
        Create *obj*; an existing object is left alone. Returns True when the
        object was created.
        """
        try:
            self.create(obj, namespace)
        except ApiException as exc:
            if exc.status == 409:
                log.debug("%s %s already exists", obj["kind"], name_of(obj))
                return False
            raise
        log.debug("created %s %s", obj["kind"], name_of(obj))
        return True

    def get_by_identifier(self, api_version: str, kind: str, name: str, namespace: str = "") -> Obj:
        res = self._resource(api_version, kind)
        try:
            got = res.get(name=name, namespace=namespace or None)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"{kind} {namespace}/{name} not found") from exc
            raise
        return got.to_dict() if hasattr(got, "to_dict") else got

    def list(self, api_version: str, kind: str, namespace: str = "", label_selector: str = "") -> List[Obj]:
        res = self._resource(api_version, kind)
        kwargs: Dict[str, Any] = {"namespace": namespace or None}
        if label_selector:
            kwargs["label_selector"] = label_selector
        got = res.get(**kwargs)
        data = got.to_dict() if hasattr(got, "to_dict") else got
        return list(data.get("items") or [])

    def delete_by_identifier(self, api_version: str, kind: str, name: str, namespace: str = "") -> None:
        """Foreground delete; an object that is already gone counts as deleted."""
        try:
            res = self._resource(api_version, kind)
            res.delete(name=name, namespace=namespace or None, body={"propagationPolicy": "Foreground"})
        except NotFoundError:
            return
        except ApiException as exc:
            if exc.status == 404:
                return
            raise
        log.debug("deleting %s %s/%s", kind, namespace, name)

    def json_patch(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str,
        patches: JsonPatches,
    ) -> Obj:
        if not len(patches):
            raise OcneError(f"empty patch for {kind} {namespace}/{name}")
        res = self._resource(api_version, kind)
        try:
            got = res.patch(
                body=patches.ops,
                name=name,
                namespace=namespace or None,
                content_type="application/json-patch+json",
            )
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"{kind} {namespace}/{name} not found") from exc
            raise
        return got.to_dict() if hasattr(got, "to_dict") else got
