# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/ovirt/models.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class IdRef(_ApiModel):
    id: str = ""


class StorageDomain(_ApiModel):
    id: str
    name: str = ""
    type: str = ""
    status: str = ""


class StorageDomainList(_ApiModel):
    storage_domain: List[StorageDomain] = Field(default_factory=list)


class Disk(_ApiModel):
    id: str = ""
    name: str = ""
    provisioned_size: int = 0
    format: str = ""
    status: str = ""
    storage_domain_id: str = ""

    @field_validator("provisioned_size", mode="before")
    @classmethod
    def _size(cls, v: Any) -> int:
        return int(v or 0)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Disk":
        domains = (data.get("storage_domains") or {}).get("storage_domain") or []
        sd_id = domains[0].get("id", "") if domains else ""
        return cls.model_validate({**data, "storage_domain_id": sd_id})


class ImageTransfer(_ApiModel):
    id: str = ""
    disk_id: str = ""
    direction: str = "upload"
    phase: str = ""
    transfer_url: str = ""
    proxy_url: str = ""
    transferred: int = 0

    @field_validator("transferred", mode="before")
    @classmethod
    def _transferred(cls, v: Any) -> int:
        return int(v or 0)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ImageTransfer":
        disk = data.get("disk") or (data.get("image") or {})
        return cls.model_validate({**data, "disk_id": disk.get("id", "")})


class CreateDiskRequest(_ApiModel):
    name: str
    provisioned_size: int
    storage_domain_id: str
    format: str = "cow"
    backup: str = "none"

    def to_api(self) -> Dict[str, Any]:
        return {
            "storage_domains": {"storage_domain": [{"id": self.storage_domain_id}]},
            "name": self.name,
            "provisioned_size": self.provisioned_size,
            "format": self.format,
            "backup": self.backup,
        }


class CreateImageTransferRequest(_ApiModel):
    disk_id: str
    name: str = ""
    direction: str = "upload"
    # cancel the transfer and unlock the disk when the client goes away
    timeout_policy: str = "cancel"

    def to_api(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"disk": {"id": self.disk_id}, "direction": self.direction}
        if self.name:
            body["name"] = self.name
        if self.timeout_policy:
            body["timeout_policy"] = self.timeout_policy
        return body


class TokenResponse(_ApiModel):
    access_token: str = ""
    token_type: Optional[str] = None
    exp: Optional[str] = None
