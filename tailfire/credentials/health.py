"""
Connection probes for provider credentials.

External data APIs get one cheap request each, classified the same way:

    2xx        success
    401 / 403  invalid credentials
    429        rate limited, retry later
    other      failure carrying the status code
    network    "Connection failed: ..."

Storage providers are probed through their own ``test_connection``
(list, then upload and delete a canary object).

Results never contain secret values.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse

import httpx

from tailfire.config import get_config
from tailfire.credentials.providers import STORAGE_PROVIDERS, ApiProvider
from tailfire.errors import NotFoundError, ValidationError
from tailfire.storage.base import ConnectionTestResult, elapsed_ms

logger = logging.getLogger(__name__)

UNSPLASH_API_URL = "https://api.unsplash.com"
GOOGLE_PLACES_API_URL = "https://places.googleapis.com/v1"
BOOKING_COM_API_URL = "https://booking-com15.p.rapidapi.com"

RATE_LIMITED = "Rate limit exceeded - try again later"

Probe = Callable[[dict[str, str], httpx.AsyncClient], Awaitable[ConnectionTestResult]]


def _status_error(response: httpx.Response) -> str:
    return f"HTTP {response.status_code}: {response.reason_phrase}"


def _classify(response: httpx.Response, success: str, unauthorized: str) -> ConnectionTestResult:
    """Shared 2xx / 401-403 / 429 / other mapping."""
    if response.is_success:
        return ConnectionTestResult(success=True, message=success)
    if response.status_code in (401, 403):
        return ConnectionTestResult(success=False, message=unauthorized, error=_status_error(response))
    if response.status_code == 429:
        return ConnectionTestResult(success=False, message=RATE_LIMITED, error=_status_error(response))
    return ConnectionTestResult(
        success=False,
        message=f"API returned error: {response.reason_phrase}",
        error=f"HTTP {response.status_code}",
    )


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# ─── Probes ──────────────────────────────────────────────────────────────


async def probe_unsplash(credentials: dict[str, str], client: httpx.AsyncClient) -> ConnectionTestResult:
    response = await client.get(
        f"{UNSPLASH_API_URL}/photos/random",
        params={"count": 1},
        headers={"Authorization": f"Client-ID {credentials['accessKey']}"},
    )
    if response.status_code == 401:
        return ConnectionTestResult(success=False, message="Invalid access key", error=_status_error(response))
    if response.status_code == 403:
        # Unsplash signals an exhausted quota with 403, not 429
        if response.headers.get("X-Ratelimit-Remaining") == "0":
            return ConnectionTestResult(success=False, message=RATE_LIMITED, error="Rate limit reached")
        return ConnectionTestResult(
            success=False,
            message="Access forbidden - check API key permissions",
            error=f"HTTP {response.status_code}",
        )
    return _classify(response, "Connection successful - Unsplash API is reachable", "Invalid access key")


async def probe_aerodatabox(credentials: dict[str, str], client: httpx.AsyncClient) -> ConnectionTestResult:
    # Health endpoint does not count against the RapidAPI quota
    base_url = get_config().credentials.aerodatabox_api_url
    response = await client.get(
        f"{base_url}/health/services/feeds/Schedules",
        headers={
            "x-rapidapi-key": credentials["rapidApiKey"],
            "x-rapidapi-host": urlparse(base_url).netloc,
        },
    )
    return _classify(
        response,
        "Connection successful - Aerodatabox API is reachable",
        "Invalid API key or unauthorized access",
    )


async def probe_amadeus(credentials: dict[str, str], client: httpx.AsyncClient) -> ConnectionTestResult:
    base_url = get_config().credentials.amadeus_api_url
    response = await client.post(
        f"{base_url}/v1/security/oauth2/token",
        data={
            "grant_type": "client_credentials",
            "client_id": credentials["clientId"],
            "client_secret": credentials["clientSecret"],
        },
    )
    if response.is_success:
        data = _json(response)
        if data.get("access_token"):
            return ConnectionTestResult(
                success=True,
                message=f"Connection successful - OAuth2 token acquired (expires in {data.get('expires_in')}s)",
            )
        return ConnectionTestResult(
            success=False,
            message="API returned error: no access token in response",
            error=f"HTTP {response.status_code}",
        )
    if response.status_code == 401:
        detail = _json(response).get("error_description") or "Invalid client credentials"
        return ConnectionTestResult(
            success=False,
            message=f"Authentication failed: {detail}",
            error=f"HTTP {response.status_code}: {detail}",
        )
    return _classify(response, "", "Authentication failed: Invalid client credentials")


async def probe_google_places(credentials: dict[str, str], client: httpx.AsyncClient) -> ConnectionTestResult:
    response = await client.post(
        f"{GOOGLE_PLACES_API_URL}/places:searchText",
        headers={
            "X-Goog-Api-Key": credentials["apiKey"],
            "X-Goog-FieldMask": "places.displayName",
        },
        json={"textQuery": "hotel", "maxResultCount": 1},
    )
    if response.status_code in (400, 401, 403):
        detail = (_json(response).get("error") or {}).get("message")
        if response.status_code == 400:
            detail = detail or "Bad request"
            prefix = "Invalid API key" if "api key" in detail.lower() else "Request error"
        else:
            detail = detail or "Authentication failed"
            prefix = "Authentication failed"
        return ConnectionTestResult(
            success=False,
            message=f"{prefix}: {detail}",
            error=f"HTTP {response.status_code}: {detail}",
        )
    return _classify(response, "Connection successful - Google Places API is reachable", "")


async def probe_booking_com(credentials: dict[str, str], client: httpx.AsyncClient) -> ConnectionTestResult:
    response = await client.get(
        f"{BOOKING_COM_API_URL}/api/v1/hotels/searchDestination",
        params={"query": "Paris"},
        headers={
            "x-rapidapi-key": credentials["rapidApiKey"],
            "x-rapidapi-host": urlparse(BOOKING_COM_API_URL).netloc,
        },
    )
    if response.is_success:
        data = _json(response)
        if data.get("status") is True or isinstance(data.get("data"), list):
            return ConnectionTestResult(
                success=True, message="Connection successful - Booking.com API is reachable"
            )
        return ConnectionTestResult(
            success=False,
            message="API returned error: unexpected response body",
            error=f"HTTP {response.status_code}",
        )
    return _classify(response, "", "Invalid RapidAPI key or unauthorized access")


API_PROBES: dict[ApiProvider, tuple[tuple[str, ...], Probe]] = {
    ApiProvider.UNSPLASH: (("accessKey",), probe_unsplash),
    ApiProvider.AERODATABOX: (("rapidApiKey",), probe_aerodatabox),
    ApiProvider.AMADEUS: (("clientId", "clientSecret"), probe_amadeus),
    ApiProvider.GOOGLE_PLACES: (("apiKey",), probe_google_places),
    ApiProvider.BOOKING_COM: (("rapidApiKey",), probe_booking_com),
}


# ─── Entry points ────────────────────────────────────────────────────────


async def check_api_connection(
    provider: ApiProvider,
    credentials: dict[str, str],
    *,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectionTestResult:
    """Run the probe for an external data API provider."""
    if provider not in API_PROBES:
        raise NotFoundError(f"No connection probe for provider: {provider}")
    required, probe = API_PROBES[provider]
    missing = [name for name in required if not credentials.get(name)]
    if missing:
        raise ValidationError(provider, [f"{name}: Field required" for name in missing])

    if timeout is None:
        timeout = get_config().credentials.http_timeout_seconds
    started = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            result = await probe(credentials, client)
    except httpx.HTTPError as e:
        logger.error("%s connection test failed: %s", provider, e)
        result = ConnectionTestResult(success=False, message=f"Connection failed: {e}", error=str(e))
    result.response_time_ms = elapsed_ms(started)
    logger.info("%s connection test: %s", provider, "SUCCESS" if result.success else "FAILED")
    return result


async def check_credentials(
    provider: ApiProvider,
    credentials: dict[str, str],
    *,
    timeout: float | None = None,
) -> ConnectionTestResult:
    """Probe any provider: a transient storage client or an external API request."""
    if provider not in STORAGE_PROVIDERS:
        return await check_api_connection(provider, credentials, timeout=timeout)

    from tailfire.storage.factory import create_storage_provider

    bucket = credentials.get("bucketName") or get_config().storage.documents_bucket
    storage = create_storage_provider(provider, credentials, bucket, timeout=timeout)
    try:
        return await storage.test_connection()
    finally:
        aclose = getattr(storage, "aclose", None)
        if aclose is not None:
            await aclose()
