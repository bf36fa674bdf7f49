"""
Centralized configuration for Tailfire.

All configuration is loaded from environment variables with sensible defaults.
Provider secrets themselves are NOT read here — see
``tailfire.credentials.resolver``, which maps them per provider.

Usage:
    from tailfire.config import get_config
    cfg = get_config()
    print(cfg.db.name)                       # "tailfire"
    print(cfg.storage.documents_bucket)      # "tailfire-documents"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "tailfire"
    user: str = "tailfire"
    password: str = ""
    connect_timeout: int = 5
    pool_min: int = 1
    pool_max: int = 10

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        parts.append(f"connect_timeout={self.connect_timeout}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class StorageConfig:
    """Bucket layout for the object-storage providers."""

    documents_bucket: str = "tailfire-documents"
    media_bucket: str = "tailfire-media"
    media_public_url: str = ""
    # True when the value came from the environment rather than the default
    documents_bucket_set: bool = False
    media_bucket_set: bool = False


@dataclass(frozen=True)
class CredentialsConfig:
    """Credential store, resolver and connection-test settings."""

    cache_ttl_seconds: float = 300.0
    http_timeout_seconds: float = 10.0
    encryption_key: str = ""  # base64 32-byte key; empty = read key file
    aerodatabox_api_url: str = "https://aerodatabox.p.rapidapi.com"
    amadeus_api_url: str = "https://test.api.amadeus.com"


@dataclass(frozen=True)
class Config:
    """Top-level Tailfire configuration."""

    workspace: Path = field(default_factory=lambda: Path.home() / "tailfire")

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)

    api_host: str = "127.0.0.1"
    api_port: int = 9300

    @property
    def api_url(self) -> str:
        return f"http://{self.api_host}:{self.api_port}"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    workspace = Path(os.environ.get("TAILFIRE_WORKSPACE", Path.home() / "tailfire"))

    db = DatabaseConfig(
        host=os.environ.get("TAILFIRE_DB_HOST", ""),
        port=int(os.environ.get("TAILFIRE_DB_PORT", "5432")),
        name=os.environ.get("TAILFIRE_DB_NAME", "tailfire"),
        user=os.environ.get("TAILFIRE_DB_USER", os.environ.get("USER", "tailfire")),
        password=os.environ.get("TAILFIRE_DB_PASSWORD", ""),
        connect_timeout=int(os.environ.get("TAILFIRE_DB_CONNECT_TIMEOUT", "5")),
        pool_min=int(os.environ.get("TAILFIRE_DB_POOL_MIN", "1")),
        pool_max=int(os.environ.get("TAILFIRE_DB_POOL_MAX", "10")),
    )

    documents_bucket = os.environ.get("R2_DOCUMENTS_BUCKET", "")
    media_bucket = os.environ.get("R2_MEDIA_BUCKET", "")
    storage = StorageConfig(
        documents_bucket=documents_bucket or "tailfire-documents",
        media_bucket=media_bucket or "tailfire-media",
        media_public_url=os.environ.get("R2_MEDIA_PUBLIC_URL", "").rstrip("/"),
        documents_bucket_set=bool(documents_bucket),
        media_bucket_set=bool(media_bucket),
    )

    credentials = CredentialsConfig(
        cache_ttl_seconds=float(os.environ.get("TAILFIRE_CREDENTIAL_CACHE_TTL", "300")),
        http_timeout_seconds=float(os.environ.get("TAILFIRE_HTTP_TIMEOUT", "10")),
        encryption_key=os.environ.get("TAILFIRE_ENCRYPTION_KEY", ""),
        aerodatabox_api_url=os.environ.get(
            "AERODATABOX_API_URL", "https://aerodatabox.p.rapidapi.com"
        ).rstrip("/"),
        amadeus_api_url=os.environ.get(
            "AMADEUS_API_URL", "https://test.api.amadeus.com"
        ).rstrip("/"),
    )

    return Config(
        workspace=workspace,
        db=db,
        storage=storage,
        credentials=credentials,
        api_host=os.environ.get("TAILFIRE_API_HOST", "127.0.0.1"),
        api_port=int(os.environ.get("TAILFIRE_API_PORT", "9300")),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
