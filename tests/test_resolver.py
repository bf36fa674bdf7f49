"""Tests for the credential resolver (source policies and startup sweep)."""

import pytest
from conftest import AMADEUS_CREDENTIALS

from tailfire.credentials.cache import CredentialCache
from tailfire.credentials.providers import ApiProvider, ProviderCredentialConfig, SourcePolicy
from tailfire.credentials.resolver import CredentialResolver
from tailfire.errors import ConfigurationError, NotFoundError


def _registry(policy):
    return {
        "P": ProviderCredentialConfig(
            policy=policy,
            env_vars={"key": "P_KEY", "region": "P_REGION"},
            required=("key",),
            is_shared=True,
        )
    }


class TestEnvOnly:
    @pytest.mark.asyncio
    async def test_resolves_from_environment(self):
        resolver = CredentialResolver(env={"P_KEY": "abc"}, registry=_registry(SourcePolicy.ENV_ONLY))
        assert await resolver.resolve("P") == {"key": "abc"}

    @pytest.mark.asyncio
    async def test_values_are_trimmed_and_blank_counts_as_missing(self):
        env = {"P_KEY": "  abc \n", "P_REGION": "   "}
        resolver = CredentialResolver(env=env, registry=_registry(SourcePolicy.ENV_ONLY))
        assert await resolver.resolve("P") == {"key": "abc"}

        resolver = CredentialResolver(env={"P_KEY": "   "}, registry=_registry(SourcePolicy.ENV_ONLY))
        with pytest.raises(ConfigurationError) as exc_info:
            await resolver.resolve("P")
        assert exc_info.value.missing_vars == ["P_KEY"]

    @pytest.mark.asyncio
    async def test_missing_names_every_variable(self):
        resolver = CredentialResolver(env={})
        with pytest.raises(ConfigurationError) as exc_info:
            await resolver.resolve(ApiProvider.AMADEUS)
        err = exc_info.value
        assert err.provider == "amadeus"
        assert err.missing_vars == ["AMADEUS_CLIENT_ID", "AMADEUS_CLIENT_SECRET"]
        assert "Missing environment variables: AMADEUS_CLIENT_ID, AMADEUS_CLIENT_SECRET" in str(err)

    @pytest.mark.asyncio
    async def test_cached_until_refresh(self):
        env = {"P_KEY": "old"}
        resolver = CredentialResolver(env=env, registry=_registry(SourcePolicy.ENV_ONLY))
        assert await resolver.resolve("P") == {"key": "old"}

        env["P_KEY"] = "new"
        assert await resolver.resolve("P") == {"key": "old"}

        assert resolver.refresh_from_environment("P") is True
        assert await resolver.resolve("P") == {"key": "new"}

    @pytest.mark.asyncio
    async def test_injected_empty_cache_is_used(self):
        cache = CredentialCache(ttl_seconds=None)
        resolver = CredentialResolver(
            env={"P_KEY": "abc"}, registry=_registry(SourcePolicy.ENV_ONLY), cache=cache
        )
        await resolver.resolve("P")
        assert cache.get("P") == {"key": "abc"}

    @pytest.mark.asyncio
    async def test_refresh_after_removal(self):
        env = {"P_KEY": "abc"}
        resolver = CredentialResolver(env=env, registry=_registry(SourcePolicy.ENV_ONLY))
        resolver.validate_startup()
        assert resolver.is_available("P")

        del env["P_KEY"]
        assert resolver.refresh_from_environment("P") is False
        assert not resolver.is_available("P")
        with pytest.raises(ConfigurationError):
            await resolver.resolve("P")

    @pytest.mark.asyncio
    async def test_real_registry(self):
        env = {
            "AMADEUS_CLIENT_ID": AMADEUS_CREDENTIALS["clientId"],
            "AMADEUS_CLIENT_SECRET": AMADEUS_CREDENTIALS["clientSecret"],
        }
        resolver = CredentialResolver(env=env)
        assert await resolver.resolve(ApiProvider.AMADEUS) == AMADEUS_CREDENTIALS
        assert resolver.is_available(ApiProvider.AMADEUS)


class TestStorePolicies:
    @pytest.mark.asyncio
    async def test_hybrid_prefers_environment(self, store):
        resolver = CredentialResolver(
            store, env={"AMADEUS_CLIENT_ID": "env-id", "AMADEUS_CLIENT_SECRET": "env-secret"},
            registry={"amadeus": ProviderCredentialConfig(
                SourcePolicy.HYBRID,
                {"clientId": "AMADEUS_CLIENT_ID", "clientSecret": "AMADEUS_CLIENT_SECRET"},
                ("clientId", "clientSecret"),
                True,
            )},
        )
        await store.create("amadeus", "Amadeus", AMADEUS_CREDENTIALS)
        assert await resolver.resolve("amadeus") == {"clientId": "env-id", "clientSecret": "env-secret"}

    @pytest.mark.asyncio
    async def test_hybrid_partial_environment_falls_back_wholesale(self, store, caplog):
        resolver = CredentialResolver(
            store, env={"AMADEUS_CLIENT_ID": "env-id"},
            registry={"amadeus": ProviderCredentialConfig(
                SourcePolicy.HYBRID,
                {"clientId": "AMADEUS_CLIENT_ID", "clientSecret": "AMADEUS_CLIENT_SECRET"},
                ("clientId", "clientSecret"),
                True,
            )},
        )
        await store.create("amadeus", "Amadeus", AMADEUS_CREDENTIALS)
        with caplog.at_level("WARNING"):
            assert await resolver.resolve("amadeus") == AMADEUS_CREDENTIALS
        assert "falling back to database credentials" in caplog.text

    @pytest.mark.asyncio
    async def test_hybrid_neither_source(self, store):
        resolver = CredentialResolver(store, env={}, registry={"amadeus": ProviderCredentialConfig(
            SourcePolicy.HYBRID, {"clientId": "AMADEUS_CLIENT_ID"}, ("clientId",), True,
        )})
        with pytest.raises(ConfigurationError) as exc_info:
            await resolver.resolve("amadeus")
        assert exc_info.value.missing_vars == ["AMADEUS_CLIENT_ID"]

    @pytest.mark.asyncio
    async def test_db_only(self, store):
        resolver = CredentialResolver(store, env={"AMADEUS_CLIENT_ID": "ignored"}, registry={
            "amadeus": ProviderCredentialConfig(SourcePolicy.DB_ONLY, {}, ("clientId",), True),
        })
        with pytest.raises(ConfigurationError, match="not found in database"):
            await resolver.resolve("amadeus")

        await store.create("amadeus", "Amadeus", AMADEUS_CREDENTIALS)
        assert await resolver.resolve("amadeus") == AMADEUS_CREDENTIALS

    @pytest.mark.asyncio
    async def test_db_only_without_store(self):
        resolver = CredentialResolver(env={}, registry={
            "P": ProviderCredentialConfig(SourcePolicy.DB_ONLY, {}, ("key",), True),
        })
        with pytest.raises(ConfigurationError):
            await resolver.resolve("P")


class TestStartup:
    def test_summary(self):
        env = {"UNSPLASH_ACCESS_KEY": "a" * 43, "GOOGLE_PLACES_API_KEY": "  "}
        resolver = CredentialResolver(env=env)
        summary = resolver.validate_startup()
        assert summary.available == ["unsplash"]
        assert summary.total == len(ApiProvider)
        assert summary.missing["google_places"] == ["GOOGLE_PLACES_API_KEY"]
        assert "unsplash" not in summary.missing
        assert resolver.get_available_providers() == ["unsplash"]

        data = summary.to_dict()
        assert data["availableCount"] == 1
        assert data["missing"]["amadeus"] == ["AMADEUS_CLIENT_ID", "AMADEUS_CLIENT_SECRET"]

    def test_never_raises_with_empty_environment(self):
        summary = CredentialResolver(env={}).validate_startup()
        assert summary.available == []
        assert len(summary.missing) == len(ApiProvider)

    def test_skips_non_env_policies(self):
        resolver = CredentialResolver(env={}, registry={
            "legacy": ProviderCredentialConfig(SourcePolicy.DB_ONLY, {}, ("key",), True),
        })
        summary = resolver.validate_startup()
        assert summary.total == 1
        assert summary.missing == {}


class TestLookups:
    def test_unknown_provider(self):
        resolver = CredentialResolver(env={})
        with pytest.raises(NotFoundError, match="Unknown provider: dropbox"):
            resolver.get_provider_config("dropbox")

    def test_policy(self):
        assert CredentialResolver(env={}).get_policy(ApiProvider.CLOUDFLARE_R2) == SourcePolicy.ENV_ONLY
