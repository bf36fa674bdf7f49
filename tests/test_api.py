"""Tests for the credential admin API (FastAPI app over httpx.ASGITransport)."""

from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from conftest import AMADEUS_CREDENTIALS, R2_CREDENTIALS
from httpx import ASGITransport

from tailfire import __version__
from tailfire.api.app import create_app
from tailfire.api.deps import Services
from tailfire.credentials.resolver import CredentialResolver
from tailfire.errors import TransportError, TransportErrorKind
from tailfire.storage.base import ConnectionTestResult
from tailfire.storage.factory import StorageProviderFactory


@pytest.fixture
def services(store):
    resolver = CredentialResolver(store, env={"UNSPLASH_ACCESS_KEY": "a" * 43})
    storage = MagicMock(spec=StorageProviderFactory)
    return Services(store=store, resolver=resolver, storage=storage)


@pytest.fixture
def app(services):
    return create_app(services)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create(client, provider="amadeus", credentials=None, **extra):
    response = await client.post(
        "/api-credentials",
        json={
            "provider": provider,
            "name": f"{provider} prod",
            "credentials": credentials or AMADEUS_CREDENTIALS,
            **extra,
        },
        headers={"x-user-id": "user-1"},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_lifespan_runs_startup_sweep(self, app, client):
        async with app.router.lifespan_context(app):
            response = await client.get("/health")
        assert response.json() == {
            "status": "ok",
            "version": __version__,
            "availableProviders": ["unsplash"],
        }


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_returns_metadata_only(self, client):
        body = await _create(client)
        assert body["provider"] == "amadeus"
        assert body["version"] == 1
        assert body["isActive"] is True
        assert body["createdBy"] == "user-1"
        assert "credentials" not in body
        assert "encryptedCredentials" not in body

    @pytest.mark.asyncio
    async def test_create_conflict(self, client):
        await _create(client)
        response = await client.post(
            "/api-credentials/",
            json={"provider": "amadeus", "name": "again", "credentials": AMADEUS_CREDENTIALS},
        )
        assert response.status_code == 409
        assert "Use rotate instead" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_create_invalid(self, client):
        response = await client.post(
            "/api-credentials",
            json={"provider": "amadeus", "name": "x", "credentials": {"clientId": "id"}},
        )
        assert response.status_code == 400
        assert response.json()["errors"] == ["clientSecret: Field required"]

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client):
        response = await client.post(
            "/api-credentials", json={"provider": "dropbox", "name": "x", "credentials": {}}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rotate_rollback_history(self, client):
        v1 = await _create(client)
        rotated = await client.post(
            f"/api-credentials/{v1['id']}/rotate",
            json={"credentials": {"clientId": "id-2", "clientSecret": "secret-2"}},
        )
        assert rotated.status_code == 200
        v2 = rotated.json()
        assert v2["version"] == 2
        assert v2["parentId"] == v1["id"]

        again = await client.post(
            f"/api-credentials/{v1['id']}/rotate", json={"credentials": AMADEUS_CREDENTIALS}
        )
        assert again.status_code == 409

        rolled = await client.post(f"/api-credentials/{v1['id']}/rollback")
        assert rolled.status_code == 200
        assert rolled.json()["isActive"] is True

        history = (await client.get(f"/api-credentials/{v2['id']}/history")).json()
        assert [h["version"] for h in history] == [2, 1]

    @pytest.mark.asyncio
    async def test_list_get_reveal(self, client):
        v1 = await _create(client)
        assert len((await client.get("/api-credentials")).json()) == 1
        assert (await client.get(f"/api-credentials/{v1['id']}")).json()["name"] == "amadeus prod"

        revealed = await client.post(f"/api-credentials/{v1['id']}/reveal")
        assert revealed.json()["credentials"] == AMADEUS_CREDENTIALS

    @pytest.mark.asyncio
    async def test_update_and_clear_expiry(self, client):
        v1 = await _create(client, expiresAt="2027-01-01T00:00:00Z")
        assert v1["expiresAt"].startswith("2027-01-01")

        renamed = (await client.put(f"/api-credentials/{v1['id']}", json={"name": "Renamed"})).json()
        assert renamed["name"] == "Renamed"
        assert renamed["expiresAt"].startswith("2027-01-01")

        cleared = (await client.put(f"/api-credentials/{v1['id']}", json={"expiresAt": None})).json()
        assert cleared["expiresAt"] is None

    @pytest.mark.asyncio
    async def test_revoke(self, client):
        v1 = await _create(client)
        first = await client.delete(f"/api-credentials/{v1['id']}")
        second = await client.delete(f"/api-credentials/{v1['id']}")
        assert first.status_code == second.status_code == 200
        assert second.json()["status"] == "revoked"

    @pytest.mark.asyncio
    async def test_missing_id(self, client):
        response = await client.get("/api-credentials/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestStorageCache:
    @pytest.mark.asyncio
    async def test_storage_mutation_clears_factory_cache(self, client, services):
        v1 = await _create(client, "cloudflare_r2", R2_CREDENTIALS)
        services.storage.clear_cache.assert_awaited_once_with("cloudflare_r2")
        await client.delete(f"/api-credentials/{v1['id']}")
        assert services.storage.clear_cache.await_count == 2

    @pytest.mark.asyncio
    async def test_api_provider_mutation_leaves_factory_alone(self, client, services):
        await _create(client)
        services.storage.clear_cache.assert_not_called()


class TestProvidersAndConnection:
    @pytest.mark.asyncio
    async def test_providers_listing(self, app, client):
        async with app.router.lifespan_context(app):
            await _create(client)
            listing = (await client.get("/api-credentials/providers")).json()
        by_key = {p["provider"]: p for p in listing}
        assert by_key["unsplash"]["isAvailable"] is True
        assert by_key["amadeus"]["isAvailable"] is True
        assert by_key["google_places"]["isAvailable"] is False

    @pytest.mark.asyncio
    async def test_test_connection(self, client, store, monkeypatch):
        async def tester(provider, credentials):
            return ConnectionTestResult(success=True, message="ok", response_time_ms=12)

        monkeypatch.setattr(store, "_tester", tester)
        v1 = await _create(client)
        response = await client.post(f"/api-credentials/{v1['id']}/test-connection")
        assert response.json() == {
            "success": True,
            "message": "ok",
            "error": None,
            "responseTimeMs": 12,
        }


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_transport_error(self, client, store, monkeypatch):
        async def broken(credential_id):
            raise TransportError("R2", "download failed: boom", TransportErrorKind.PERMISSION_DENIED)

        monkeypatch.setattr(store, "reveal", broken)
        response = await client.post("/api-credentials/x/reveal")
        assert response.status_code == 502
        assert response.json() == {"error": "R2 download failed: boom", "kind": "permission_denied"}
