"""Tests for the provider connection probes."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from conftest import AMADEUS_CREDENTIALS, R2_CREDENTIALS

from tailfire.credentials.health import RATE_LIMITED, check_api_connection, check_credentials
from tailfire.credentials.providers import ApiProvider
from tailfire.errors import NotFoundError, ValidationError
from tailfire.storage.base import ConnectionTestResult

RAPID_KEY = {"rapidApiKey": "r" * 40}


def _transport(response=None, handler=None, seen=None):
    def default(request):
        if seen is not None:
            seen.append(request)
        return response

    return httpx.MockTransport(handler or default)


class TestClassification:
    @pytest.mark.asyncio
    async def test_aerodatabox_success(self, clean_env):
        seen = []
        result = await check_api_connection(
            ApiProvider.AERODATABOX, RAPID_KEY, transport=_transport(httpx.Response(200, json={}), seen=seen)
        )
        assert result.success is True
        assert result.response_time_ms is not None
        assert seen[0].headers["x-rapidapi-host"] == "aerodatabox.p.rapidapi.com"
        assert seen[0].url.path == "/health/services/feeds/Schedules"

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        result = await check_api_connection(
            ApiProvider.AERODATABOX, RAPID_KEY, transport=_transport(httpx.Response(401))
        )
        assert result.success is False
        assert result.message == "Invalid API key or unauthorized access"
        assert result.error == "HTTP 401: Unauthorized"

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        result = await check_api_connection(
            ApiProvider.BOOKING_COM, RAPID_KEY, transport=_transport(httpx.Response(429))
        )
        assert result.message == RATE_LIMITED

    @pytest.mark.asyncio
    async def test_other_status(self):
        result = await check_api_connection(
            ApiProvider.AERODATABOX, RAPID_KEY, transport=_transport(httpx.Response(503))
        )
        assert result.success is False
        assert result.error == "HTTP 503"
        assert result.message == "API returned error: Service Unavailable"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def boom(request):
            raise httpx.ConnectError("connection refused")

        result = await check_api_connection(
            ApiProvider.UNSPLASH, {"accessKey": "a" * 43}, transport=_transport(handler=boom)
        )
        assert result.success is False
        assert result.message == "Connection failed: connection refused"
        assert result.response_time_ms is not None

    @pytest.mark.asyncio
    async def test_secret_never_in_result(self):
        result = await check_api_connection(
            ApiProvider.AMADEUS, AMADEUS_CREDENTIALS, transport=_transport(httpx.Response(500))
        )
        assert AMADEUS_CREDENTIALS["clientSecret"] not in str(result.to_dict())


class TestProviderProbes:
    @pytest.mark.asyncio
    async def test_amadeus_token(self, clean_env):
        seen = []
        result = await check_api_connection(
            ApiProvider.AMADEUS,
            AMADEUS_CREDENTIALS,
            transport=_transport(httpx.Response(200, json={"access_token": "t", "expires_in": 1799}), seen=seen),
        )
        assert result.success is True
        assert "expires in 1799s" in result.message
        assert str(seen[0].url) == "https://test.api.amadeus.com/v1/security/oauth2/token"
        assert b"grant_type=client_credentials" in seen[0].content

    @pytest.mark.asyncio
    async def test_amadeus_bad_client(self):
        result = await check_api_connection(
            ApiProvider.AMADEUS,
            AMADEUS_CREDENTIALS,
            transport=_transport(httpx.Response(401, json={"error_description": "Client credentials are invalid"})),
        )
        assert result.message == "Authentication failed: Client credentials are invalid"

    @pytest.mark.asyncio
    async def test_unsplash_quota_exhausted(self):
        response = httpx.Response(403, headers={"X-Ratelimit-Remaining": "0"})
        result = await check_api_connection(
            ApiProvider.UNSPLASH, {"accessKey": "a" * 43}, transport=_transport(response)
        )
        assert result.message == RATE_LIMITED

    @pytest.mark.asyncio
    async def test_google_places_bad_key(self):
        response = httpx.Response(400, json={"error": {"message": "API key not valid."}})
        result = await check_api_connection(
            ApiProvider.GOOGLE_PLACES, {"apiKey": "AIza" + "b" * 35}, transport=_transport(response)
        )
        assert result.message == "Invalid API key: API key not valid."

    @pytest.mark.asyncio
    async def test_booking_unexpected_body(self):
        result = await check_api_connection(
            ApiProvider.BOOKING_COM, RAPID_KEY, transport=_transport(httpx.Response(200, json={"status": False}))
        )
        assert result.success is False
        ok = await check_api_connection(
            ApiProvider.BOOKING_COM, RAPID_KEY, transport=_transport(httpx.Response(200, json={"data": []}))
        )
        assert ok.success is True


class TestEntryPoints:
    @pytest.mark.asyncio
    async def test_missing_fields(self):
        with pytest.raises(ValidationError, match="clientSecret: Field required") as exc_info:
            await check_api_connection(ApiProvider.AMADEUS, {"clientId": "x"})
        assert exc_info.value.errors == ["clientSecret: Field required"]

    @pytest.mark.asyncio
    async def test_storage_has_no_api_probe(self):
        with pytest.raises(NotFoundError, match="No connection probe"):
            await check_api_connection(ApiProvider.CLOUDFLARE_R2, R2_CREDENTIALS)

    @pytest.mark.asyncio
    async def test_storage_uses_credential_bucket(self):
        storage = MagicMock()
        storage.test_connection = AsyncMock(return_value=ConnectionTestResult(success=True, message="ok"))
        del storage.aclose
        with patch(
            "tailfire.storage.factory.create_storage_provider", return_value=storage
        ) as create:
            result = await check_credentials(ApiProvider.CLOUDFLARE_R2, R2_CREDENTIALS)
        assert result.success is True
        assert create.call_args.args[2] == "trip-documents"

    @pytest.mark.asyncio
    async def test_storage_client_is_closed(self):
        storage = MagicMock()
        storage.test_connection = AsyncMock(return_value=ConnectionTestResult(success=False, message="x"))
        storage.aclose = AsyncMock()
        with patch("tailfire.storage.factory.create_storage_provider", return_value=storage):
            await check_credentials(ApiProvider.SUPABASE_STORAGE, {"url": "u", "serviceRoleKey": "k"})
        storage.aclose.assert_awaited_once()
