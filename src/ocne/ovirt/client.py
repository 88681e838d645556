# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ovirt/client.py
from __future__ import annotations

import json
import logging
from typing import BinaryIO, List, Optional
from urllib.parse import urlencode

import requests

from ocne.errors import NotFoundError, OcneError, RemoteStatusError, TransportError
from . import rest
from .credentials import Credentials
from .models import (
    CreateDiskRequest,
    CreateImageTransferRequest,
    Disk,
    ImageTransfer,
    StorageDomain,
    StorageDomainList,
    TokenResponse,
)

log = logging.getLogger("ocne")

TOKEN_PATH = "/sso/oauth/token"
API_PATH = "/api"

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024

TRANSFER_ACTIONS = ("finalize", "pause", "resume", "cancel")


def chunk_ranges(total_len: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
    """
    Yield (start, end, is_last) for each chunk; start/end are 0-based and
    inclusive.
    """
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")
    remaining = total_len
    end = -1
    while remaining > 0:
        chunk = min(chunk_size, remaining)
        start = end + 1
        end = start + chunk - 1
        remaining -= chunk
        yield start, end, remaining == 0


def _read_exactly(reader: BinaryIO, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        piece = reader.read(n - len(buf))
        if not piece:
            break
        buf.extend(piece)
    return bytes(buf)


class OvirtClient:
    """
    Typed calls against the oVirt engine API. The bearer token is fetched
    lazily and dropped whenever the transport reports a failure.
    """

    def __init__(
        self,
        server_url: str,
        credentials: Credentials,
        *,
        ca_pem: Optional[bytes] = None,
        insecure: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self.credentials = credentials
        self._token = ""
        self.rest = rest.RestClient(
            server_url,
            ca_pem=ca_pem,
            insecure=insecure,
            on_failure=self.clear_access_token,
            session=session,
        )

    # ------------------------- token handling -------------------------

    @property
    def access_token(self) -> str:
        return self._token

    def clear_access_token(self) -> None:
        if self._token:
            log.debug("Clearing oVirt access token")
        self._token = ""

    def ensure_access_token(self) -> str:
        if self._token:
            return self._token

        form = urlencode(
            {
                "username": self.credentials.username,
                "password": self.credentials.password,
                "scope": self.credentials.scope,
                "grant_type": "password",
            }
        )
        headers = rest.content_form(rest.accept_json({}))
        resp = self.rest.post(TOKEN_PATH, headers, form)

        token = TokenResponse.model_validate(resp.json() or {}).access_token
        if not token:
            raise TransportError("oVirt token endpoint returned an empty access token")
        self._token = token
        return token

    def connect(self) -> "OvirtClient":
        """Authenticate and validate the token against the API root."""
        self.ensure_access_token()
        self.api_root()
        return self

    def _headers(self) -> rest.Headers:
        h = rest.accept_json({})
        rest.bearer(h, self.ensure_access_token())
        return rest.no_cache(h)

    def _json_headers(self) -> rest.Headers:
        return rest.content_json(self._headers())

    # ------------------------- typed calls -------------------------

    def api_root(self) -> dict:
        return self.rest.get(API_PATH, self._headers()).json() or {}

    def list_storage_domains(self) -> List[StorageDomain]:
        data = self.rest.get(f"{API_PATH}/storagedomains", self._headers()).json() or {}
        return StorageDomainList.model_validate(data).storage_domain

    def get_storage_domain(self, name: str) -> StorageDomain:
        for sd in self.list_storage_domains():
            if sd.name == name:
                return sd
        raise NotFoundError(f"Storage Domain {name} not found")

    def create_disk(self, req: CreateDiskRequest) -> Disk:
        resp = self.rest.post(f"{API_PATH}/disks", self._json_headers(), json.dumps(req.to_api()))
        return Disk.from_api(resp.json() or {})

    def get_disk(self, disk_id: str) -> Disk:
        try:
            resp = self.rest.get(f"{API_PATH}/disks/{disk_id}", self._headers())
        except RemoteStatusError as exc:
            if exc.status == 404:
                raise NotFoundError(f"Disk {disk_id} not found") from exc
            raise
        return Disk.from_api(resp.json() or {})

    def delete_disk(self, disk_id: str) -> None:
        self.rest.delete(f"{API_PATH}/disks/{disk_id}", self._headers())

    def create_image_transfer(self, req: CreateImageTransferRequest) -> ImageTransfer:
        resp = self.rest.post(f"{API_PATH}/imagetransfers", self._json_headers(), json.dumps(req.to_api()))
        return ImageTransfer.from_api(resp.json() or {})

    def get_image_transfer(self, transfer_id: str) -> ImageTransfer:
        try:
            resp = self.rest.get(f"{API_PATH}/imagetransfers/{transfer_id}", self._headers())
        except RemoteStatusError as exc:
            if exc.status == 404:
                raise NotFoundError(f"ImageTransfer {transfer_id} not found") from exc
            raise
        return ImageTransfer.from_api(resp.json() or {})

    def delete_image_transfer(self, transfer_id: str) -> None:
        self.rest.delete(f"{API_PATH}/imagetransfers/{transfer_id}", self._headers())

    def image_transfer_action(self, transfer_id: str, action: str) -> None:
        if action not in TRANSFER_ACTIONS:
            raise ValueError(f"unknown image transfer action {action!r}")
        self.rest.post(f"{API_PATH}/imagetransfers/{transfer_id}/{action}", self._json_headers(), "{}")

    # ------------------------- chunked upload -------------------------

    def upload(
        self,
        transfer_url: str,
        reader: BinaryIO,
        total_len: int,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """
        PUT *total_len* bytes from *reader* to *transfer_url* in chunks.

        The last chunk carries ?close=y so the daemon flushes and releases
        block storage; earlier chunks use ?flush=n. Returns the number of
        requests issued.
        """
        sep = "&" if "?" in transfer_url else "?"
        puts = 0
        for start, end, is_last in chunk_ranges(total_len, chunk_size):
            length = end - start + 1
            data = _read_exactly(reader, length)
            if len(data) != length:
                raise OcneError(
                    f"short read uploading image: wanted {length} bytes at offset {start}, got {len(data)}"
                )

            url = f"{transfer_url}{sep}{'close=y' if is_last else 'flush=n'}"
            headers = rest.content_octet_stream({})
            rest.content_length(headers, length)
            rest.content_range(headers, start, end, total_len)
            rest.bearer(headers, self.ensure_access_token())
            rest.no_cache(headers)

            self.rest.put(url, headers, data)
            puts += 1
            log.debug("uploaded bytes %d-%d/%d", start, end, total_len)
        return puts
