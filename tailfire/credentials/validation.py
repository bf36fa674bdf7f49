"""
Credential validation — per-provider pydantic schemas.

Credential payloads are validated before encryption. Keys are the camelCase
field names used in the registry (``accessKeyId``, ``serviceRoleKey``, ...).
String values are whitespace-trimmed and unknown keys are dropped; every
failing field is reported, not just the first one.

Usage:
    from tailfire.credentials.validation import validate_credentials

    fields = validate_credentials(ApiProvider.AMADEUS, {"clientId": " id ", "clientSecret": "s"})
    # {"clientId": "id", "clientSecret": "s"}
"""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from tailfire.credentials.providers import ApiProvider
from tailfire.errors import ValidationError

# ─── Rule helpers ────────────────────────────────────────────────────────


def _fail(message: str) -> PydanticCustomError:
    return PydanticCustomError("credential_field", message)


def required(message: str) -> AfterValidator:
    def check(value: str) -> str:
        if not value:
            raise _fail(message)
        return value

    return AfterValidator(check)


def matches(pattern: str, message: str) -> AfterValidator:
    compiled = re.compile(pattern)

    def check(value: str) -> str:
        if not compiled.search(value):
            raise _fail(message)
        return value

    return AfterValidator(check)


def length(message: str, *, min_len: int = 0, max_len: int | None = None) -> AfterValidator:
    def check(value: str) -> str:
        if len(value) < min_len or (max_len is not None and len(value) > max_len):
            raise _fail(message)
        return value

    return AfterValidator(check)


_URL = r"^https?://[^\s/$.?#][^\s]*$"


class CredentialSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _blank_optionals_to_missing(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for name, info in cls.model_fields.items():
            key = info.alias or name
            if info.is_required() or key not in cleaned:
                continue
            value = cleaned[key]
            if value is None or (isinstance(value, str) and not value.strip()):
                del cleaned[key]
        return cleaned


# ─── Storage providers ───────────────────────────────────────────────────


class SupabaseStorageCredentials(CredentialSchema):
    url: Annotated[
        str,
        required("Project URL is required"),
        matches(_URL, "Must be a valid URL"),
        matches(r"^https://.*\.supabase\.co$", "Must be a valid Supabase project URL"),
    ]
    service_role_key: Annotated[
        str,
        required("Service role key is required"),
        matches(r"^eyJ", "Must be a valid JWT token"),
    ]


class CloudflareR2Credentials(CredentialSchema):
    account_id: Annotated[
        str,
        required("Account ID is required"),
        matches(r"^[a-f0-9]{32}$", "Must be a valid Cloudflare account ID (32 hex characters)"),
    ]
    access_key_id: Annotated[
        str,
        required("Access key ID is required"),
        length("Access key ID must be 32 characters", min_len=32, max_len=32),
    ]
    secret_access_key: Annotated[
        str,
        required("Secret access key is required"),
        length("Secret access key must be 64 characters", min_len=64, max_len=64),
    ]
    bucket_name: Annotated[
        str,
        length("Bucket name must be at least 3 characters", min_len=3),
        length("Bucket name must not exceed 63 characters", max_len=63),
        matches(
            r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
            "Bucket name must contain only lowercase letters, numbers, and hyphens",
        ),
    ]
    endpoint: (
        Annotated[
            str,
            matches(_URL, "Endpoint must be a valid URL"),
            matches(r"\.r2\.cloudflarestorage\.com/?$", "Must be a valid R2 endpoint"),
        ]
        | None
    ) = None


class BackblazeB2Credentials(CredentialSchema):
    key_id: Annotated[
        str,
        required("Key ID is required"),
        matches(r"^[a-f0-9]{25}$", "Must be a valid Backblaze key ID"),
    ]
    application_key: Annotated[
        str,
        required("Application key is required"),
        length("Application key must be 31 characters", min_len=31, max_len=31),
    ]
    bucket_name: Annotated[
        str,
        length("Bucket name must be at least 6 characters", min_len=6),
        length("Bucket name must not exceed 63 characters", max_len=63),
        matches(
            r"^[a-z0-9][a-z0-9-]*$",
            "Bucket name must contain only lowercase letters, numbers, and hyphens",
        ),
    ]
    # Accepted with or without scheme: "s3.us-west-004.backblazeb2.com"
    endpoint: Annotated[
        str,
        required("Endpoint is required"),
        matches(
            r"^(https?://)?s3\.[a-z0-9-]+\.backblazeb2\.com/?$",
            "Must be a valid B2 S3 endpoint",
        ),
    ]
    region: (
        Annotated[str, matches(r"^[a-z]+-[a-z]+-\d{3}$", "Region must be in format: us-west-004")]
        | None
    ) = None


# ─── External data APIs ──────────────────────────────────────────────────


class UnsplashCredentials(CredentialSchema):
    access_key: Annotated[
        str,
        required("Access key is required"),
        matches(r"^[A-Za-z0-9_-]{20,}$", "Must be a valid Unsplash access key"),
    ]
    secret_key: (
        Annotated[str, matches(r"^[A-Za-z0-9_-]{20,}$", "Must be a valid Unsplash secret key")]
        | None
    ) = None


# RapidAPI keys vary in format; permissive length check only
_RapidApiKey = Annotated[
    str,
    required("RapidAPI key is required"),
    length("RapidAPI key appears too short", min_len=20),
    length("RapidAPI key appears too long", max_len=100),
]


class AerodataboxCredentials(CredentialSchema):
    rapid_api_key: _RapidApiKey


class AmadeusCredentials(CredentialSchema):
    client_id: Annotated[str, required("Client ID is required")]
    client_secret: Annotated[str, required("Client Secret is required")]


class GooglePlacesCredentials(CredentialSchema):
    api_key: Annotated[
        str,
        required("API key is required"),
        matches(r"^AIza[0-9A-Za-z_-]{35}$", "Must be a valid Google API key (starts with AIza)"),
    ]


class BookingComCredentials(CredentialSchema):
    rapid_api_key: _RapidApiKey


CREDENTIAL_SCHEMAS: dict[ApiProvider, type[CredentialSchema]] = {
    ApiProvider.SUPABASE_STORAGE: SupabaseStorageCredentials,
    ApiProvider.CLOUDFLARE_R2: CloudflareR2Credentials,
    ApiProvider.BACKBLAZE_B2: BackblazeB2Credentials,
    ApiProvider.UNSPLASH: UnsplashCredentials,
    ApiProvider.AERODATABOX: AerodataboxCredentials,
    ApiProvider.AMADEUS: AmadeusCredentials,
    ApiProvider.GOOGLE_PLACES: GooglePlacesCredentials,
    ApiProvider.BOOKING_COM: BookingComCredentials,
}


def format_errors(error: PydanticValidationError) -> list[str]:
    """Human-readable ``field: message`` strings, one per failing field."""
    messages: list[str] = []
    for err in error.errors():
        path = ".".join(str(part) for part in err["loc"])
        messages.append(f"{path}: {err['msg']}" if path else err["msg"])
    return messages


def validate_credentials(provider: ApiProvider, credentials: Any) -> dict[str, str]:
    """Validate and normalize a credential payload for ``provider``.

    Returns the normalized field map (trimmed, unknown keys dropped).
    Raises ``ValidationError`` listing every failing field.
    """
    schema = CREDENTIAL_SCHEMAS.get(provider)
    if schema is None:
        raise ValidationError(str(provider), [f"provider: No validation schema for {provider}"])
    if not isinstance(credentials, dict):
        raise ValidationError(str(provider), ["credentials: Must be an object of field values"])
    try:
        model = schema.model_validate(credentials)
    except PydanticValidationError as e:
        raise ValidationError(str(provider), format_errors(e)) from None
    return model.model_dump(by_alias=True, exclude_none=True)


def safe_validate_credentials(
    provider: ApiProvider, credentials: Any
) -> tuple[dict[str, str] | None, list[str]]:
    """Like ``validate_credentials`` but returns ``(fields, errors)`` instead of raising."""
    try:
        return validate_credentials(provider, credentials), []
    except ValidationError as e:
        return None, e.errors


