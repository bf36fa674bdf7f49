"""
Credential response models.

``CredentialMetadata`` is everything about a row except the encrypted
payload; ``CredentialSecrets`` adds the decrypted field map and is only
produced by ``CredentialStore.reveal``. Both serialize with camelCase keys.

Usage:
    from tailfire.credentials.models import CredentialMetadata

    row = cursor.fetchone()  # RealDictCursor row
    meta = CredentialMetadata.from_row(row)
    meta.model_dump(by_alias=True, mode="json")
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tailfire.credentials.providers import ApiProvider


class CredentialStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class CredentialMetadata(BaseModel):
    """A credential row without its secret (safe to return from any endpoint)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    parent_id: str | None = None
    provider: ApiProvider
    name: str
    version: int
    is_active: bool
    status: CredentialStatus
    last_rotated_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], **extra: Any) -> CredentialMetadata:
        data = {name: row.get(name) for name in CredentialMetadata.model_fields}
        for key in ("id", "parent_id", "created_by", "updated_by"):
            if data[key] is not None:
                data[key] = str(data[key])
        data.update(extra)
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CredentialSecrets(CredentialMetadata):
    """Metadata plus the decrypted field map."""

    credentials: dict[str, Any]
