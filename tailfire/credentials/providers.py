"""
Provider registry — the fixed set of integrations Tailfire holds secrets for.

Two static tables, keyed by ``ApiProvider``:

  PROVIDER_CREDENTIAL_CONFIG   where credentials come from (source policy,
                               env-var mapping, required fields, shared flag)
  PROVIDER_METADATA            what the admin UI shows (labels, field
                               definitions, cost tier, features)

Source policies:
  env-only   environment variables only; fail fast when missing
  db-only    encrypted rows in api_credentials only (legacy)
  hybrid     environment first, database fallback (migration period)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from tailfire.errors import NotFoundError


class ApiProvider(StrEnum):
    SUPABASE_STORAGE = "supabase_storage"
    CLOUDFLARE_R2 = "cloudflare_r2"
    BACKBLAZE_B2 = "backblaze_b2"
    UNSPLASH = "unsplash"
    AERODATABOX = "aerodatabox"
    AMADEUS = "amadeus"
    GOOGLE_PLACES = "google_places"
    BOOKING_COM = "booking_com"


class SourcePolicy(StrEnum):
    ENV_ONLY = "env-only"
    DB_ONLY = "db-only"
    HYBRID = "hybrid"


STORAGE_PROVIDERS: frozenset[ApiProvider] = frozenset({
    ApiProvider.SUPABASE_STORAGE,
    ApiProvider.CLOUDFLARE_R2,
    ApiProvider.BACKBLAZE_B2,
})


def parse_provider(value: str | ApiProvider) -> ApiProvider:
    """Coerce a provider key, raising NotFoundError for unknown keys."""
    try:
        return ApiProvider(value)
    except ValueError:
        raise NotFoundError(f"Unknown provider: {value}") from None


# ─── Credential sourcing ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ProviderCredentialConfig:
    """Where one provider's credentials are read from."""

    policy: SourcePolicy
    env_vars: dict[str, str]  # credential field -> environment variable
    required: tuple[str, ...]
    is_shared: bool  # shared across environments vs. environment-specific


PROVIDER_CREDENTIAL_CONFIG: dict[ApiProvider, ProviderCredentialConfig] = {
    # Third-party APIs (shared across all environments)
    ApiProvider.UNSPLASH: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={"accessKey": "UNSPLASH_ACCESS_KEY"},
        required=("accessKey",),
        is_shared=True,
    ),
    ApiProvider.AERODATABOX: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={"rapidApiKey": "AERODATABOX_RAPIDAPI_KEY"},
        required=("rapidApiKey",),
        is_shared=True,
    ),
    ApiProvider.AMADEUS: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={
            "clientId": "AMADEUS_CLIENT_ID",
            "clientSecret": "AMADEUS_CLIENT_SECRET",
        },
        required=("clientId", "clientSecret"),
        is_shared=True,
    ),
    ApiProvider.GOOGLE_PLACES: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={"apiKey": "GOOGLE_PLACES_API_KEY"},
        required=("apiKey",),
        is_shared=True,
    ),
    ApiProvider.BOOKING_COM: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={"rapidApiKey": "BOOKING_RAPIDAPI_KEY"},
        required=("rapidApiKey",),
        is_shared=True,
    ),
    # Storage providers (environment-specific secrets)
    ApiProvider.SUPABASE_STORAGE: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={
            "url": "SUPABASE_URL",
            "serviceRoleKey": "SUPABASE_SERVICE_ROLE_KEY",
        },
        required=("url", "serviceRoleKey"),
        is_shared=False,
    ),
    ApiProvider.CLOUDFLARE_R2: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={
            "accountId": "CLOUDFLARE_R2_ACCOUNT_ID",
            "accessKeyId": "CLOUDFLARE_R2_ACCESS_KEY_ID",
            "secretAccessKey": "CLOUDFLARE_R2_SECRET_ACCESS_KEY",
            "bucketName": "CLOUDFLARE_R2_BUCKET_NAME",
            "endpoint": "CLOUDFLARE_R2_ENDPOINT",
        },
        required=("accountId", "accessKeyId", "secretAccessKey", "bucketName"),
        is_shared=False,
    ),
    ApiProvider.BACKBLAZE_B2: ProviderCredentialConfig(
        policy=SourcePolicy.ENV_ONLY,
        env_vars={
            "keyId": "BACKBLAZE_B2_KEY_ID",
            "applicationKey": "BACKBLAZE_B2_APPLICATION_KEY",
            "bucketName": "BACKBLAZE_B2_BUCKET_NAME",
            "endpoint": "BACKBLAZE_B2_ENDPOINT",
            "region": "BACKBLAZE_B2_REGION",
        },
        required=("keyId", "applicationKey", "bucketName", "endpoint"),
        is_shared=False,
    ),
}


def check_registry(
    registry: dict[ApiProvider, ProviderCredentialConfig] | None = None,
) -> list[str]:
    """Return registry problems: required fields lacking an env-var mapping."""
    problems: list[str] = []
    for provider, cfg in (registry or PROVIDER_CREDENTIAL_CONFIG).items():
        if cfg.policy == SourcePolicy.DB_ONLY:
            continue
        for name in cfg.required:
            if name not in cfg.env_vars:
                problems.append(f"{provider}: required field '{name}' has no environment variable")
    return problems


# ─── Admin UI metadata ───────────────────────────────────────────────────


@dataclass(frozen=True)
class CredentialFieldDefinition:
    name: str
    label: str
    type: str  # text | password | url | select
    description: str
    required: bool = True
    placeholder: str | None = None
    pattern: str | None = None
    options: tuple[dict[str, str], ...] = ()


@dataclass(frozen=True)
class ProviderMetadata:
    provider: ApiProvider
    display_name: str
    description: str
    documentation: str
    cost_tier: str  # free | low | medium | high
    features: tuple[str, ...]
    required_fields: tuple[CredentialFieldDefinition, ...]

    def to_dict(self, is_available: bool) -> dict[str, Any]:
        """API response shape, joined with the credential-sourcing config."""
        cfg = PROVIDER_CREDENTIAL_CONFIG[self.provider]
        return {
            "provider": self.provider.value,
            "displayName": self.display_name,
            "description": self.description,
            "documentation": self.documentation,
            "requiredFields": [
                {
                    "name": f.name,
                    "label": f.label,
                    "type": f.type,
                    "description": f.description,
                    "required": f.required,
                    "placeholder": f.placeholder,
                    "pattern": f.pattern,
                    "options": list(f.options) or None,
                }
                for f in self.required_fields
            ],
            "isAvailable": is_available,
            "sourcePolicy": cfg.policy.value,
            "envVars": dict(cfg.env_vars),
            "isShared": cfg.is_shared,
            "costTier": self.cost_tier,
            "features": list(self.features),
        }


_F = CredentialFieldDefinition

PROVIDER_METADATA: dict[ApiProvider, ProviderMetadata] = {
    ApiProvider.SUPABASE_STORAGE: ProviderMetadata(
        provider=ApiProvider.SUPABASE_STORAGE,
        display_name="Supabase Storage",
        description="Supabase object storage built on S3",
        documentation="Get credentials from: Supabase Dashboard → Project Settings → API",
        cost_tier="medium",
        features=(
            "Integrated with Supabase Auth",
            "Automatic image transformations",
            "Edge CDN distribution",
            "$0.021/GB storage + $0.09/GB bandwidth",
        ),
        required_fields=(
            _F("url", "Project URL", "url", "Your Supabase project URL",
               placeholder="https://xxxxx.supabase.co", pattern=r"^https://.*\.supabase\.co$"),
            _F("serviceRoleKey", "Service Role Key", "password",
               "Service role key with storage admin permissions",
               placeholder="eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...", pattern="^eyJ"),
        ),
    ),
    ApiProvider.CLOUDFLARE_R2: ProviderMetadata(
        provider=ApiProvider.CLOUDFLARE_R2,
        display_name="Cloudflare R2",
        description="S3-compatible object storage with zero egress fees",
        documentation="Get credentials from: Cloudflare Dashboard → R2 → Manage R2 API Tokens",
        cost_tier="low",
        features=(
            "Zero egress fees",
            "S3-compatible API",
            "Global edge network",
            "$0.015/GB storage, free bandwidth",
        ),
        required_fields=(
            _F("accountId", "Account ID", "text", "Your Cloudflare account ID (32 hex characters)",
               placeholder="a1b2c3d4e5f6...", pattern="^[a-f0-9]{32}$"),
            _F("accessKeyId", "Access Key ID", "text",
               "R2 API token access key ID (32 characters)", pattern="^.{32}$"),
            _F("secretAccessKey", "Secret Access Key", "password",
               "R2 API token secret access key (64 characters)", pattern="^.{64}$"),
            _F("bucketName", "Bucket Name", "text", "Name of your R2 bucket",
               placeholder="trip-documents", pattern="^[a-z0-9][a-z0-9-]*[a-z0-9]$"),
            _F("endpoint", "Endpoint (Optional)", "url", "Custom R2 endpoint URL", required=False,
               placeholder="https://xxxxx.r2.cloudflarestorage.com",
               pattern=r"\.r2\.cloudflarestorage\.com$"),
        ),
    ),
    ApiProvider.BACKBLAZE_B2: ProviderMetadata(
        provider=ApiProvider.BACKBLAZE_B2,
        display_name="Backblaze B2",
        description="Low-cost S3-compatible cloud storage",
        documentation="Get credentials from: Backblaze Dashboard → App Keys → Add a New Application Key",
        cost_tier="low",
        features=(
            "Lowest storage costs ($6/TB/month)",
            "Free egress up to 3x storage",
            "S3-compatible API",
            "Lifecycle rules for archival",
        ),
        required_fields=(
            _F("keyId", "Application Key ID", "text", "Your B2 application key ID",
               placeholder="xxxxxxxxxxxxxxxxxxxxxxx"),
            _F("applicationKey", "Application Key", "password", "Your B2 application key (secret)",
               placeholder="K000xxxxxxxxxxxxxxxxxxxxxxxxxxxxx"),
            _F("bucketName", "Bucket Name", "text", "Name of your B2 bucket",
               placeholder="trip-documents", pattern="^[a-z0-9][a-z0-9-]*[a-z0-9]$"),
            _F("endpoint", "S3 Endpoint", "text",
               "B2 S3-compatible endpoint (found in bucket details)",
               placeholder="s3.us-west-004.backblazeb2.com",
               pattern=r"^s3\.[a-z]+-[a-z]+-\d{3}\.backblazeb2\.com$"),
            _F("region", "Region (Optional)", "text",
               "AWS region code (auto-detected from endpoint if not provided)", required=False,
               placeholder="us-west-004", pattern=r"^[a-z]+-[a-z]+-\d{3}$"),
        ),
    ),
    ApiProvider.UNSPLASH: ProviderMetadata(
        provider=ApiProvider.UNSPLASH,
        display_name="Unsplash",
        description="Free stock photography API for high-quality images",
        documentation="Get credentials from: Unsplash Developers → Your Apps → Keys",
        cost_tier="free",
        features=(
            "Free tier: 50 requests/hour",
            "High-quality stock photos",
            "Attribution required",
            "Production: Apply for higher limits",
        ),
        required_fields=(
            _F("accessKey", "Access Key", "password", "Your Unsplash API access key",
               placeholder="HP1rJ9SBFOfnGfZHu6BRrY-..."),
            _F("secretKey", "Secret Key (Optional)", "password",
               "Your Unsplash API secret key (for OAuth flows)", required=False,
               placeholder="ViWsW4lFDLobw5Datex..."),
        ),
    ),
    ApiProvider.AERODATABOX: ProviderMetadata(
        provider=ApiProvider.AERODATABOX,
        display_name="Aerodatabox (Flights)",
        description="Real-time flight data, airport search, and flight status via RapidAPI",
        documentation="Get credentials from: https://rapidapi.com/aerodatabox/api/aerodatabox "
        "→ Subscribe → Copy API Key",
        cost_tier="low",
        features=(
            "Flight search by number and date",
            "Airport autocomplete search",
            "Real-time flight status tracking",
            "Free tier: 100 requests/month",
        ),
        required_fields=(
            _F("rapidApiKey", "RapidAPI Key", "password",
               "Your RapidAPI key for Aerodatabox API access",
               placeholder="a1b2c3d4e5f6g7h8i9j0..."),
        ),
    ),
    ApiProvider.AMADEUS: ProviderMetadata(
        provider=ApiProvider.AMADEUS,
        display_name="Amadeus",
        description="Industry-standard GDS travel APIs - flights, hotels, points of interest, and more",
        documentation="Get credentials from: https://developers.amadeus.com "
        "→ My Self-Service Workspace → Create App",
        cost_tier="medium",
        features=(
            "Flight schedules & status",
            "Hotel search & booking",
            "Points of interest",
            "Travel recommendations",
            "Industry-standard GDS data",
        ),
        required_fields=(
            _F("clientId", "Client ID", "text", "Your Amadeus API Client ID (from app dashboard)",
               placeholder="a1b2c3d4e5f6g7h8i9j0k1l2m3n4o5p6"),
            _F("clientSecret", "Client Secret", "password", "Your Amadeus API Client Secret",
               placeholder="Enter your client secret..."),
        ),
    ),
    ApiProvider.GOOGLE_PLACES: ProviderMetadata(
        provider=ApiProvider.GOOGLE_PLACES,
        display_name="Google Places",
        description="Hotel search with photos, reviews, ratings, and contact info "
        "via Google Places API (New)",
        documentation="Get credentials from: https://console.cloud.google.com → APIs & Services "
        '→ Credentials → Create API Key → Enable "Places API (New)"',
        cost_tier="medium",
        features=(
            "Hotel search by location/name",
            "High-quality photos with attribution",
            "User reviews and ratings",
            "Contact information (phone, website)",
            "~$0.032/Text Search, ~$0.017/Place Details",
        ),
        required_fields=(
            _F("apiKey", "API Key", "password", "Google Cloud API key with Places API (New) enabled",
               placeholder="AIzaSy...", pattern="^AIza[0-9A-Za-z_-]{35}$"),
        ),
    ),
    ApiProvider.BOOKING_COM: ProviderMetadata(
        provider=ApiProvider.BOOKING_COM,
        display_name="Booking.com",
        description="Rich hotel amenities, facilities, and policies via RapidAPI DataCrawler",
        documentation="Get credentials from: https://rapidapi.com/DataCrawler/api/booking-com15 "
        "→ Subscribe → Copy API Key",
        cost_tier="medium",
        features=(
            "Detailed amenities (WiFi, Pool, Spa, Gym)",
            "Hotel policies and check-in/out times",
            "Room types and availability",
            "Complements Google Places data",
        ),
        required_fields=(
            _F("rapidApiKey", "RapidAPI Key", "password",
               "Your RapidAPI key for Booking.com DataCrawler API",
               placeholder="a1b2c3d4e5f6g7h8i9j0..."),
        ),
    ),
}


_registry_problems = check_registry()
if _registry_problems:
    raise RuntimeError("Invalid provider registry: " + "; ".join(_registry_problems))
