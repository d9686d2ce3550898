"""
Credential snapshots and the resolvers that produce them.

A resolver is asked for a fresh Credential before every attempt, so a
provider that rotates STS or bearer tokens is honored from the next
attempt on. Resolution failures are configuration problems and are
never retried.
"""

import asyncio
import inspect
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .errors import CredentialError
from .logging import get_logger

logger = get_logger(__name__)

SECURITY_TOKEN_HEADER = "x-acs-security-token"
BEARER_TOKEN_HEADER = "x-acs-bearer-token"

# Field names accepted from provider mappings
_CREDENTIAL_KEYS = {
    "access_key_id": ("access_key_id", "accessKeyId", "AccessKeyId"),
    "access_key_secret": ("access_key_secret", "accessKeySecret", "AccessKeySecret"),
    "security_token": ("security_token", "securityToken", "SecurityToken"),
    "bearer_token": ("bearer_token", "bearerToken", "BearerToken"),
}


@dataclass(frozen=True)
class Credential:
    """Immutable credential snapshot used to sign one request."""
    access_key_id: str
    access_key_secret: str = ""
    security_token: Optional[str] = None
    bearer_token: Optional[str] = None

    def headers(self) -> dict[str, str]:
        """Token headers to send alongside the signed query."""
        headers = {}
        if self.security_token:
            headers[SECURITY_TOKEN_HEADER] = self.security_token
        if self.bearer_token:
            headers[BEARER_TOKEN_HEADER] = self.bearer_token
        return headers

    def query_parameters(self) -> dict[str, str]:
        """Token parameters that take part in the signature."""
        params = {}
        if self.security_token:
            params["SecurityToken"] = self.security_token
        if self.bearer_token:
            params["BearerToken"] = self.bearer_token
        return params

    def __repr__(self) -> str:
        return (
            f"Credential(access_key_id={self.access_key_id!r}, "
            f"security_token={'***' if self.security_token else None}, "
            f"bearer_token={'***' if self.bearer_token else None})"
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Credential":
        """Build a credential from a dict using snake_case or camelCase keys."""
        values = {}
        for field_name, keys in _CREDENTIAL_KEYS.items():
            for key in keys:
                if data.get(key):
                    values[field_name] = data[key]
                    break
        if "access_key_id" not in values:
            raise CredentialError("credential mapping has no access key id")
        return cls(**values)


def _check(credential: Credential) -> Credential:
    if not credential.access_key_id:
        raise CredentialError("credential has no access key id")
    if not credential.access_key_secret:
        if not credential.bearer_token:
            raise CredentialError("credential has neither an access key secret nor a bearer token")
        # Signature is still computed with an empty secret.
        logger.debug("Signing with a bearer token and no access key secret")
    # Tokens travel as HTTP header values
    for name in ("security_token", "bearer_token"):
        value = getattr(credential, name)
        if value and not value.isascii():
            raise CredentialError(f"{name} contains non-ASCII characters")
    return credential


class CredentialResolver(ABC):
    """Yields the credential to sign the next attempt with."""

    @abstractmethod
    async def resolve(self) -> Credential:
        """Return a credential snapshot.

        Raises:
            CredentialError: If no usable credential is available
        """
        pass


class StaticCredentialResolver(CredentialResolver):
    """Always returns the same credential."""

    def __init__(self, credential: Credential):
        self._credential = _check(credential)

    async def resolve(self) -> Credential:
        return self._credential


ProviderResult = Union[Credential, Mapping[str, Any]]
Provider = Callable[[], Union[ProviderResult, Awaitable[ProviderResult]]]


class ProviderCredentialResolver(CredentialResolver):
    """Asks an external provider for credentials on every resolution.

    The provider may be a plain or async callable returning a Credential
    or a mapping. Calls are serialized so a provider that refreshes
    tokens is never entered concurrently.

    Example:
        async def fetch_sts():
            creds = await sts.assume_role(...)
            return {"accessKeyId": creds.id, "accessKeySecret": creds.secret,
                    "securityToken": creds.token}

        resolver = ProviderCredentialResolver(fetch_sts)
    """

    def __init__(self, provider: Provider):
        if not callable(provider):
            raise CredentialError("credential provider must be callable")
        self._provider = provider
        self._lock = asyncio.Lock()

    async def resolve(self) -> Credential:
        async with self._lock:
            try:
                result = self._provider()
                if inspect.isawaitable(result):
                    result = await result
            except CredentialError:
                raise
            except Exception as e:
                raise CredentialError(f"credential provider failed: {e}") from e

        if isinstance(result, Credential):
            return _check(result)
        if isinstance(result, Mapping):
            return _check(Credential.from_mapping(result))
        raise CredentialError(
            f"credential provider returned {type(result).__name__}, expected Credential or mapping"
        )


class EnvironmentCredentialResolver(CredentialResolver):
    """Reads credentials from the environment at every resolution."""

    ACCESS_KEY_ID = "ALIBABA_CLOUD_ACCESS_KEY_ID"
    ACCESS_KEY_SECRET = "ALIBABA_CLOUD_ACCESS_KEY_SECRET"
    SECURITY_TOKEN = "ALIBABA_CLOUD_SECURITY_TOKEN"

    async def resolve(self) -> Credential:
        access_key_id = os.environ.get(self.ACCESS_KEY_ID, "")
        if not access_key_id:
            raise CredentialError(f"{self.ACCESS_KEY_ID} is not set")
        return _check(Credential(
            access_key_id=access_key_id,
            access_key_secret=os.environ.get(self.ACCESS_KEY_SECRET, ""),
            security_token=os.environ.get(self.SECURITY_TOKEN) or None,
        ))
