"""Tests for credential snapshots and resolvers."""

import asyncio

import pytest

from aliyun_kms.credentials import (
    BEARER_TOKEN_HEADER,
    SECURITY_TOKEN_HEADER,
    Credential,
    EnvironmentCredentialResolver,
    ProviderCredentialResolver,
    StaticCredentialResolver,
)
from aliyun_kms.errors import ConfigurationError, CredentialError


class TestCredential:
    """Credential value object."""

    def test_immutable(self, credential):
        with pytest.raises(AttributeError):
            credential.access_key_id = "other"

    def test_plain_keys_add_nothing(self, credential):
        assert credential.headers() == {}
        assert credential.query_parameters() == {}

    def test_security_token(self):
        credential = Credential("id", "secret", security_token="sts")

        assert credential.headers() == {SECURITY_TOKEN_HEADER: "sts"}
        assert credential.query_parameters() == {"SecurityToken": "sts"}

    def test_bearer_token(self):
        credential = Credential("id", bearer_token="bt")

        assert credential.headers() == {BEARER_TOKEN_HEADER: "bt"}
        assert credential.query_parameters() == {"BearerToken": "bt"}

    def test_repr_hides_secrets(self):
        credential = Credential("id", "top-secret", security_token="sts-token")

        assert "top-secret" not in repr(credential)
        assert "sts-token" not in repr(credential)

    def test_from_mapping_camel_case(self):
        credential = Credential.from_mapping({
            "accessKeyId": "id",
            "accessKeySecret": "secret",
            "securityToken": "sts",
        })

        assert credential == Credential("id", "secret", security_token="sts")

    def test_from_mapping_snake_case(self):
        credential = Credential.from_mapping({"access_key_id": "id", "bearer_token": "bt"})

        assert credential == Credential("id", bearer_token="bt")

    def test_from_mapping_without_key_id(self):
        with pytest.raises(CredentialError):
            Credential.from_mapping({"accessKeySecret": "secret"})


class TestStaticCredentialResolver:
    """Static keys."""

    @pytest.mark.asyncio
    async def test_returns_same_snapshot(self, credential):
        resolver = StaticCredentialResolver(credential)

        assert await resolver.resolve() is credential
        assert await resolver.resolve() is credential

    def test_rejects_missing_secret(self):
        with pytest.raises(CredentialError):
            StaticCredentialResolver(Credential("id"))

    def test_rejects_missing_key_id(self):
        with pytest.raises(CredentialError):
            StaticCredentialResolver(Credential("", "secret"))

    def test_bearer_only_allowed(self):
        StaticCredentialResolver(Credential("id", bearer_token="bt"))

    @pytest.mark.parametrize("tokens", [
        {"security_token": "tök"},
        {"bearer_token": "bt-ü"},
    ])
    def test_rejects_non_ascii_tokens(self, tokens):
        with pytest.raises(CredentialError, match="non-ASCII"):
            StaticCredentialResolver(Credential("id", "secret", **tokens))

    def test_credential_error_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            StaticCredentialResolver(Credential("id"))


class TestProviderCredentialResolver:
    """Provider-backed credentials."""

    @pytest.mark.asyncio
    async def test_async_provider(self):
        async def provider():
            return Credential("id", "secret", security_token="sts")

        credential = await ProviderCredentialResolver(provider).resolve()

        assert credential.security_token == "sts"

    @pytest.mark.asyncio
    async def test_sync_provider_mapping(self):
        resolver = ProviderCredentialResolver(lambda: {"accessKeyId": "id", "accessKeySecret": "secret"})

        assert await resolver.resolve() == Credential("id", "secret")

    @pytest.mark.asyncio
    async def test_invoked_on_every_resolve(self):
        calls = []

        def provider():
            calls.append(1)
            return Credential("id", "secret", security_token=f"token-{len(calls)}")

        resolver = ProviderCredentialResolver(provider)
        first = await resolver.resolve()
        second = await resolver.resolve()

        assert len(calls) == 2
        assert first.security_token == "token-1"
        assert second.security_token == "token-2"

    @pytest.mark.asyncio
    async def test_provider_exception_wrapped(self):
        def provider():
            raise RuntimeError("boom")

        with pytest.raises(CredentialError, match="boom") as exc_info:
            await ProviderCredentialResolver(provider).resolve()

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unexpected_result(self):
        with pytest.raises(CredentialError, match="int"):
            await ProviderCredentialResolver(lambda: 42).resolve()

    @pytest.mark.asyncio
    async def test_incomplete_credential(self):
        with pytest.raises(CredentialError):
            await ProviderCredentialResolver(lambda: {"accessKeyId": "id"}).resolve()

    @pytest.mark.asyncio
    async def test_non_ascii_token_rejected(self):
        resolver = ProviderCredentialResolver(
            lambda: {"accessKeyId": "id", "accessKeySecret": "secret", "securityToken": "tök"}
        )

        with pytest.raises(CredentialError, match="non-ASCII"):
            await resolver.resolve()

    def test_not_callable(self):
        with pytest.raises(CredentialError):
            ProviderCredentialResolver("not-a-function")

    @pytest.mark.asyncio
    async def test_concurrent_resolution_serialized(self):
        active = 0
        peak = 0

        async def provider():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return Credential("id", "secret")

        resolver = ProviderCredentialResolver(provider)
        results = await asyncio.gather(*(resolver.resolve() for _ in range(5)))

        assert len(results) == 5
        assert peak == 1


class TestEnvironmentCredentialResolver:
    """Environment variables."""

    @pytest.mark.asyncio
    async def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ALIBABA_CLOUD_ACCESS_KEY_ID", "env-id")
        monkeypatch.setenv("ALIBABA_CLOUD_ACCESS_KEY_SECRET", "env-secret")
        monkeypatch.setenv("ALIBABA_CLOUD_SECURITY_TOKEN", "env-sts")

        credential = await EnvironmentCredentialResolver().resolve()

        assert credential == Credential("env-id", "env-secret", security_token="env-sts")

    @pytest.mark.asyncio
    async def test_reread_each_time(self, monkeypatch):
        monkeypatch.setenv("ALIBABA_CLOUD_ACCESS_KEY_ID", "env-id")
        monkeypatch.setenv("ALIBABA_CLOUD_ACCESS_KEY_SECRET", "first")
        resolver = EnvironmentCredentialResolver()

        first = await resolver.resolve()
        monkeypatch.setenv("ALIBABA_CLOUD_ACCESS_KEY_SECRET", "second")
        second = await resolver.resolve()

        assert first.access_key_secret == "first"
        assert second.access_key_secret == "second"

    @pytest.mark.asyncio
    async def test_missing_variables(self):
        with pytest.raises(CredentialError, match="ALIBABA_CLOUD_ACCESS_KEY_ID"):
            await EnvironmentCredentialResolver().resolve()
