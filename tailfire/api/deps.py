"""API dependency injection — shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from tailfire.credentials.resolver import CredentialResolver
from tailfire.credentials.store import CredentialStore
from tailfire.storage.factory import StorageProviderFactory


@dataclass
class Services:
    """Process-wide collaborators, built once per app."""

    store: CredentialStore
    resolver: CredentialResolver
    storage: StorageProviderFactory

    @classmethod
    def build(cls) -> Services:
        store = CredentialStore()
        resolver = CredentialResolver(store)
        return cls(store=store, resolver=resolver, storage=StorageProviderFactory(resolver))


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(request: Request) -> str | None:
    """Acting user id, set by the access-control gate in front of the API."""
    return request.headers.get("x-user-id") or None
