# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ovirt/rest.py
"""
Thin HTTPS transport for the oVirt REST API.

Every failed call (transport error or status > 204) invokes the
token-invalidation callback exactly once before the error is raised, so the
owning client re-authenticates on its next request. One request at a time
per instance.
"""
from __future__ import annotations

import json
import logging
import re
import tempfile
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
import urllib3

from ocne.errors import RemoteStatusError, TransportError

log = logging.getLogger("ocne")

Headers = Dict[str, str]

DEFAULT_TIMEOUT = 300


# ---------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------
def accept_json(h: Headers) -> Headers:
    h["Accept"] = "application/json"
    return h


def content_json(h: Headers) -> Headers:
    h["Content-Type"] = "application/json"
    return h


def content_xml(h: Headers) -> Headers:
    h["Content-Type"] = "application/xml"
    return h


def content_form(h: Headers) -> Headers:
    h["Content-Type"] = "application/x-www-form-urlencoded"
    return h


def content_octet_stream(h: Headers) -> Headers:
    h["Content-Type"] = "application/octet-stream"
    return h


def bearer(h: Headers, token: str) -> Headers:
    h["Authorization"] = f"Bearer {token}"
    return h


def no_cache(h: Headers) -> Headers:
    h["Cache-Control"] = "no-cache"
    return h


def content_length(h: Headers, length: int) -> Headers:
    h["Content-Length"] = str(length)
    return h


def content_range(h: Headers, start: int, end: int, total: int) -> Headers:
    h["Content-Range"] = f"bytes {start}-{end}/{total}"
    return h


# ---------------------------------------------------------------------
# URL handling
# ---------------------------------------------------------------------
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


def normalize_endpoint(endpoint: str) -> str:
    endpoint = endpoint.strip()
    if not _SCHEME_RE.match(endpoint):
        endpoint = f"https://{endpoint}"
    return endpoint.rstrip("/")


def resolve_url(endpoint: str, path: str) -> str:
    """
    resolve_url("host", "/api")           -> https://host/api
    resolve_url("https://host/", "/api")  -> https://host/api
    """
    return f"{normalize_endpoint(endpoint)}/{path.lstrip('/')}"


@dataclass
class RestResponse:
    status: int
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body or b"null")


class RestClient:
    def __init__(
        self,
        endpoint: str,
        *,
        ca_pem: Optional[bytes] = None,
        insecure: bool = False,
        on_failure: Optional[Callable[[], None]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.endpoint = normalize_endpoint(endpoint)
        self.on_failure = on_failure
        self.timeout = timeout
        self._ca_file: Optional[str] = None
        self.session = session or self._init_session(ca_pem, insecure)

    def _init_session(self, ca_pem: Optional[bytes], insecure: bool) -> requests.Session:
        session = requests.Session()
        if insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            session.verify = False
        elif ca_pem:
            # requests wants a path to the trust bundle
            with tempfile.NamedTemporaryFile("wb", suffix=".pem", delete=False) as tf:
                tf.write(ca_pem)
                self._ca_file = tf.name
            session.verify = self._ca_file
        else:
            session.verify = True
        return session

    def resolve_url(self, path: str) -> str:
        return resolve_url(self.endpoint, path)

    def _failed(self) -> None:
        if self.on_failure is not None:
            self.on_failure()

    def _request(self, method: str, url: str, headers: Headers, body: Any = None) -> RestResponse:
        log.debug("oVirt %s %s", method, url)
        try:
            resp = self.session.request(method, url, headers=headers, data=body, timeout=self.timeout)
        except requests.RequestException as exc:
            self._failed()
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code > 204:
            self._failed()
            text = resp.text.strip() if resp.content else ""
            msg = f"{method} {url} returned HTTP {resp.status_code}"
            if text:
                msg = f"{msg}: {text}"
            raise RemoteStatusError(msg, resp.status_code, resp.content or b"")

        return RestResponse(status=resp.status_code, body=resp.content or b"")

    def get(self, path: str, headers: Headers, body: Any = None) -> RestResponse:
        return self._request("GET", self.resolve_url(path), headers, body)

    def post(self, path: str, headers: Headers, body: Any = None) -> RestResponse:
        return self._request("POST", self.resolve_url(path), headers, body)

    def put(self, url: str, headers: Headers, body: Any = None) -> RestResponse:
        """PUT to an absolute URL (image transfer URLs live on the proxy)."""
        return self._request("PUT", url, headers, body)

    def delete(self, path: str, headers: Headers, body: Any = None) -> RestResponse:
        return self._request("DELETE", self.resolve_url(path), headers, body)
