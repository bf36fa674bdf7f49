"""API credential administration routes.

Every response uses camelCase keys. Secrets are only returned by
``POST /{id}/reveal``. Authorization is enforced by the gate in front of
this service, not here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tailfire.api.deps import Services, get_actor, get_services
from tailfire.credentials.models import CredentialStatus
from tailfire.credentials.providers import STORAGE_PROVIDERS, ApiProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api-credentials", tags=["api-credentials"])

_PROVIDER_KEYS = frozenset(p.value for p in ApiProvider)


# ─── Request bodies ──────────────────────────────────────────────────────


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateCredentialRequest(_Body):
    provider: str
    name: str
    credentials: dict[str, Any]
    expires_at: datetime | None = None


class UpdateCredentialRequest(_Body):
    name: str | None = None
    status: CredentialStatus | None = None
    expires_at: datetime | None = None


class RotateCredentialRequest(_Body):
    credentials: dict[str, Any]
    expires_at: datetime | None = None


async def _after_mutation(services: Services, provider: ApiProvider) -> None:
    # Cached storage clients hold the old secret
    if provider in STORAGE_PROVIDERS:
        await services.storage.clear_cache(provider)


# ─── Routes ──────────────────────────────────────────────────────────────


@router.get("/providers")
async def api_list_providers(services: Services = Depends(get_services)):
    available = {
        ApiProvider(p)
        for p in services.resolver.get_available_providers()
        if p in _PROVIDER_KEYS
    }
    return await services.store.get_provider_metadata(available=available)


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED, include_in_schema=False)
async def api_create_credential(
    body: CreateCredentialRequest,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    meta = await services.store.create(
        body.provider, body.name, body.credentials, expires_at=body.expires_at, actor=actor
    )
    await _after_mutation(services, meta.provider)
    return meta.to_dict()


@router.get("")
@router.get("/", include_in_schema=False)
async def api_list_credentials(services: Services = Depends(get_services)):
    return [meta.to_dict() for meta in await services.store.find_all()]


@router.get("/{credential_id}")
async def api_get_credential(credential_id: str, services: Services = Depends(get_services)):
    return (await services.store.find_one(credential_id)).to_dict()


@router.post("/{credential_id}/reveal")
async def api_reveal_credential(
    credential_id: str,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    logger.warning("Credential %s revealed by %s", credential_id, actor or "<unknown>")
    return (await services.store.reveal(credential_id)).to_dict()


@router.post("/{credential_id}/test-connection")
async def api_test_connection(credential_id: str, services: Services = Depends(get_services)):
    return (await services.store.test_connection(credential_id)).to_dict()


@router.put("/{credential_id}")
async def api_update_credential(
    credential_id: str,
    body: UpdateCredentialRequest,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    kwargs: dict[str, Any] = {"name": body.name, "status": body.status, "actor": actor}
    if "expires_at" in body.model_fields_set:
        kwargs["expires_at"] = body.expires_at
    meta = await services.store.update(credential_id, **kwargs)
    await _after_mutation(services, meta.provider)
    return meta.to_dict()


@router.post("/{credential_id}/rotate")
async def api_rotate_credential(
    credential_id: str,
    body: RotateCredentialRequest,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    meta = await services.store.rotate(
        credential_id, body.credentials, expires_at=body.expires_at, actor=actor
    )
    await _after_mutation(services, meta.provider)
    return meta.to_dict()


@router.post("/{credential_id}/rollback")
async def api_rollback_credential(
    credential_id: str,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    meta = await services.store.rollback(credential_id, actor=actor)
    await _after_mutation(services, meta.provider)
    return meta.to_dict()


@router.get("/{credential_id}/history")
async def api_credential_history(credential_id: str, services: Services = Depends(get_services)):
    return [meta.to_dict() for meta in await services.store.get_history(credential_id)]


@router.delete("/{credential_id}")
async def api_revoke_credential(
    credential_id: str,
    services: Services = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    meta = await services.store.remove(credential_id, actor=actor)
    await _after_mutation(services, meta.provider)
    return meta.to_dict()
