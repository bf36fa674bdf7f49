"""
Error taxonomy shared by the credential store, resolver and storage providers.

    ValidationError            malformed/incomplete credential fields (all of them)
    ConflictError              active row exists / rotate inactive / rollback active
    NotFoundError              unknown credential id or provider key
    ConfigurationError         credentials could not be resolved (names what is missing)
    TransportError             storage or external-API failure, wrapped with backend name
    ProviderInitializationError  a storage provider could not be constructed

None of these ever carry decrypted secret values.
"""

from __future__ import annotations

from enum import StrEnum


class TailfireError(Exception):
    """Base class for all Tailfire errors."""


class ValidationError(TailfireError):
    """Credential fields failed the provider schema."""

    def __init__(self, provider: str, errors: list[str]):
        self.provider = provider
        self.errors = list(errors)
        super().__init__(f"Invalid credentials for provider {provider}: {', '.join(self.errors)}")


class ConflictError(TailfireError):
    """The requested state change conflicts with the current active row."""


class NotFoundError(TailfireError):
    """Unknown credential id, or unknown provider key."""


class ConfigurationError(TailfireError):
    """Credentials for a provider could not be resolved."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        missing_vars: list[str] | None = None,
    ):
        self.provider = provider
        self.missing_vars = list(missing_vars or [])
        super().__init__(message)

    @classmethod
    def missing_env_vars(cls, provider: str, missing_vars: list[str]) -> ConfigurationError:
        return cls(
            f"{provider} credentials not configured. "
            f"Missing environment variables: {', '.join(missing_vars)}",
            provider=provider,
            missing_vars=missing_vars,
        )


class TransportErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    BUCKET_NOT_FOUND = "bucket_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


class TransportError(TailfireError):
    """A storage backend or external API call failed."""

    def __init__(
        self,
        backend: str,
        message: str,
        kind: TransportErrorKind = TransportErrorKind.UNKNOWN,
        original: BaseException | None = None,
    ):
        self.backend = backend
        self.kind = kind
        self.original = original
        super().__init__(f"{backend} {message}")

    @property
    def is_not_found(self) -> bool:
        return self.kind == TransportErrorKind.NOT_FOUND


class ProviderInitializationError(TailfireError):
    """A storage provider could not be initialized for a provider/bucket pair."""

    def __init__(self, provider: str, message: str, original: BaseException | None = None):
        self.provider = provider
        self.original = original
        super().__init__(f"[{provider}] {message}")
