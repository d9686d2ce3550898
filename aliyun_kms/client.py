"""
Asynchronous KMS API client.

Every operation validates its required arguments, assembles the action's
query parameters and hands them to the RetryEngine, which signs and
sends them. Responses are returned as parsed JSON.
"""

import json
from typing import Any, Mapping, Optional, Union

import httpx

from .config import ClientConfig, RuntimeOptions, DEFAULT_RUNTIME_OPTIONS
from .credentials import Credential, CredentialResolver, StaticCredentialResolver
from .engine import RetryEngine
from .errors import ValidationError
from .logging import call_context, get_logger

logger = get_logger(__name__)

DOCS = "https://help.aliyun.com/document_detail"

Runtime = Optional[Union[RuntimeOptions, Mapping[str, Any]]]


def _require(doc_id: int, **arguments: Any) -> None:
    missing = [name for name, value in arguments.items() if not value]
    if missing:
        raise ValidationError(
            f"{' & '.join(missing)} must be passed in, please see {DOCS}/{doc_id}.html"
        )


def _context(encryption_context: Optional[Union[str, Mapping[str, str]]]) -> Optional[str]:
    if isinstance(encryption_context, Mapping):
        return json.dumps(dict(encryption_context), separators=(",", ":"))
    return encryption_context


class KMSClient:
    """
    Client for the KMS API.

    Example:
        async with KMSClient({
            "endpoint": "kms.cn-hangzhou.aliyuncs.com",
            "access_key_id": "...",
            "access_key_secret": "...",
        }) as kms:
            key = await kms.create_key(description="orders")
            blob = await kms.encrypt(key["KeyMetadata"]["KeyId"], "aGVsbG8=")
    """

    def __init__(
        self,
        config: Optional[Union[ClientConfig, Mapping[str, Any]]] = None,
        *,
        resolver: Optional[CredentialResolver] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        runtime: Runtime = None,
    ):
        """
        Initialize the client.

        Args:
            config: Endpoint and credentials; read from ALIYUN_KMS_* when omitted
            resolver: Credential resolver overriding the static keys in config
            http_client: Shared httpx client (the caller closes it)
            runtime: Default runtime options for every call

        Raises:
            ConfigurationError: If the endpoint or credentials are missing
        """
        self.config = ClientConfig.from_value(config)
        self.config.check(has_resolver=resolver is not None)

        if resolver is None:
            resolver = StaticCredentialResolver(Credential(
                access_key_id=self.config.access_key_id,
                access_key_secret=self.config.access_key_secret or "",
                security_token=self.config.security_token,
                bearer_token=self.config.bearer_token,
            ))

        self.default_runtime = DEFAULT_RUNTIME_OPTIONS.merge(runtime)
        self._engine = RetryEngine(
            self.config.endpoint,
            resolver,
            api_version=self.config.api_version,
            http_client=http_client,
            protocol=self.config.protocol,
        )

    async def call(
        self,
        action: str,
        params: Optional[Mapping[str, Any]] = None,
        runtime: Runtime = None,
    ) -> Any:
        """
        Invoke any KMS action.

        Args:
            action: Action name, e.g. "DescribeKey"
            params: Action parameters; empty values are not sent
            runtime: Overrides for timeout, max-attempts, backoff_policy, ...

        Returns:
            Parsed JSON response
        """
        _require(69006, action=action)
        options = self.default_runtime.merge(runtime)
        query = {"Action": action}
        query.update(params or {})

        with call_context(action=action):
            logger.debug(
                "Calling KMS",
                endpoint=self.config.endpoint,
                max_attempts=options.max_attempts,
                backoff_policy=options.backoff_policy.value,
            )
            return await self._engine.execute(query, options)

    async def cancel_key_deletion(self, key_id: str, runtime: Runtime = None) -> Any:
        """Cancel a scheduled deletion, re-enabling the key."""
        _require(44197, key_id=key_id)
        return await self.call("CancelKeyDeletion", {"KeyId": key_id}, runtime)

    async def create_alias(self, key_id: str, alias_name: str, runtime: Runtime = None) -> Any:
        """Create an alias (prefix 'alias/') for a key."""
        _require(68624, key_id=key_id, alias_name=alias_name)
        return await self.call("CreateAlias", {"KeyId": key_id, "AliasName": alias_name}, runtime)

    async def create_key(
        self,
        origin: Optional[str] = None,
        description: str = "",
        key_usage: str = "ENCRYPT/DECRYPT",
        runtime: Runtime = None,
    ) -> Any:
        """
        Create a customer master key.

        Args:
            origin: Aliyun_KMS (default) or EXTERNAL
            description: Free-form description
            key_usage: Key usage
        """
        return await self.call("CreateKey", {
            "Origin": origin,
            "Description": description,
            "KeyUsage": key_usage,
        }, runtime)

    async def decrypt(
        self,
        ciphertext_blob: str,
        encryption_context: Optional[Union[str, Mapping[str, str]]] = None,
        runtime: Runtime = None,
    ) -> Any:
        """Decrypt a CiphertextBlob returned by encrypt."""
        _require(28950, ciphertext_blob=ciphertext_blob)
        return await self.call("Decrypt", {
            "CiphertextBlob": ciphertext_blob,
            "EncryptionContext": _context(encryption_context),
        }, runtime)

    async def delete_alias(self, alias_name: str, runtime: Runtime = None) -> Any:
        _require(68626, alias_name=alias_name)
        return await self.call("DeleteAlias", {"AliasName": alias_name}, runtime)

    async def delete_key_material(self, key_id: str, runtime: Runtime = None) -> Any:
        """Delete imported key material."""
        _require(68623, key_id=key_id)
        return await self.call("DeleteKeyMaterial", {"KeyId": key_id}, runtime)

    async def describe_key(self, key_id: str, runtime: Runtime = None) -> Any:
        _require(28952, key_id=key_id)
        return await self.call("DescribeKey", {"KeyId": key_id}, runtime)

    async def describe_regions(self, runtime: Runtime = None) -> Any:
        """List the regions KMS is available in."""
        return await self.call("DescribeRegions", None, runtime)

    async def disable_key(self, key_id: str, runtime: Runtime = None) -> Any:
        _require(35151, key_id=key_id)
        return await self.call("DisableKey", {"KeyId": key_id}, runtime)

    async def enable_key(self, key_id: str, runtime: Runtime = None) -> Any:
        _require(35150, key_id=key_id)
        return await self.call("EnableKey", {"KeyId": key_id}, runtime)

    async def encrypt(
        self,
        key_id: str,
        plaintext: str,
        encryption_context: Optional[Union[str, Mapping[str, str]]] = None,
        runtime: Runtime = None,
    ) -> Any:
        """
        Encrypt data with a key.

        Args:
            key_id: Key ID or alias
            plaintext: Base64-encoded data
            encryption_context: Mapping or JSON string bound to the ciphertext
        """
        _require(28949, key_id=key_id, plaintext=plaintext)
        return await self.call("Encrypt", {
            "KeyId": key_id,
            "Plaintext": plaintext,
            "EncryptionContext": _context(encryption_context),
        }, runtime)

    async def generate_data_key(
        self,
        key_id: str,
        key_spec: str = "AES_256",
        number_of_bytes: Optional[int] = None,
        encryption_context: Optional[Union[str, Mapping[str, str]]] = None,
        runtime: Runtime = None,
    ) -> Any:
        """
        Generate a data key, returned in plaintext and encrypted under key_id.

        Args:
            key_id: Key ID or alias
            key_spec: AES_256 or AES_128
            number_of_bytes: Key length, overrides key_spec
            encryption_context: Mapping or JSON string bound to the ciphertext
        """
        _require(28948, key_id=key_id)
        return await self.call("GenerateDataKey", {
            "KeyId": key_id,
            "KeySpec": key_spec,
            "NumberOfBytes": number_of_bytes,
            "EncryptionContext": _context(encryption_context),
        }, runtime)

    async def get_parameters_for_import(
        self,
        key_id: str,
        wrapping_algorithm: str,
        wrapping_key_spec: str = "RSA_2048",
        runtime: Runtime = None,
    ) -> Any:
        """
        Get the public key and import token for importing key material.

        Args:
            key_id: Key ID of an EXTERNAL key
            wrapping_algorithm: RSAES_PKCS1_V1_5, RSAES_OAEP_SHA_1 or RSAES_OAEP_SHA_256
            wrapping_key_spec: RSA_2048
        """
        _require(
            68621,
            key_id=key_id,
            wrapping_algorithm=wrapping_algorithm,
            wrapping_key_spec=wrapping_key_spec,
        )
        return await self.call("GetParametersForImport", {
            "KeyId": key_id,
            "WrappingAlgorithm": wrapping_algorithm,
            "WrappingKeySpec": wrapping_key_spec,
        }, runtime)

    async def import_key_material(
        self,
        key_id: str,
        encrypted_key_material: str,
        import_token: str,
        key_material_expire_unix: Optional[int] = None,
        runtime: Runtime = None,
    ) -> Any:
        """
        Import key material wrapped with the public key from get_parameters_for_import.

        Args:
            key_id: Key ID of an EXTERNAL key
            encrypted_key_material: Base64 wrapped key material
            import_token: Token from get_parameters_for_import
            key_material_expire_unix: Expiry as a unix timestamp; never expires if omitted
        """
        _require(68622, encrypted_key_material=encrypted_key_material, import_token=import_token)
        return await self.call("ImportKeyMaterial", {
            "KeyId": key_id,
            "EncryptedKeyMaterial": encrypted_key_material,
            "ImportToken": import_token,
            "KeyMaterialExpireUnix": key_material_expire_unix,
        }, runtime)

    async def list_aliases(
        self,
        page_number: Optional[int] = None,
        page_size: Optional[int] = None,
        runtime: Runtime = None,
    ) -> Any:
        """List the caller's aliases in this region. Pages default to 1 and 10 server-side."""
        return await self.call("ListAliases", {
            "PageNumber": page_number,
            "PageSize": page_size,
        }, runtime)

    async def list_aliases_by_key_id(
        self,
        key_id: str,
        page_number: Optional[int] = None,
        page_size: Optional[int] = None,
        runtime: Runtime = None,
    ) -> Any:
        _require(68628, key_id=key_id)
        return await self.call("ListAliasesByKeyId", {
            "KeyId": key_id,
            "PageNumber": page_number,
            "PageSize": page_size,
        }, runtime)

    async def list_keys(
        self,
        page_number: Optional[int] = None,
        page_size: Optional[int] = None,
        runtime: Runtime = None,
    ) -> Any:
        """List the caller's key IDs in this region."""
        return await self.call("ListKeys", {
            "PageNumber": page_number,
            "PageSize": page_size,
        }, runtime)

    async def schedule_key_deletion(
        self,
        key_id: str,
        pending_window_in_days: int,
        runtime: Runtime = None,
    ) -> Any:
        """
        Schedule a key for deletion.

        Args:
            key_id: Key ID
            pending_window_in_days: Days before deletion, 7 to 30
        """
        _require(44196, key_id=key_id, pending_window_in_days=pending_window_in_days)
        return await self.call("ScheduleKeyDeletion", {
            "KeyId": key_id,
            "PendingWindowInDays": pending_window_in_days,
        }, runtime)

    async def update_alias(self, key_id: str, alias_name: str, runtime: Runtime = None) -> Any:
        """Point an existing alias at another key."""
        _require(68625, key_id=key_id, alias_name=alias_name)
        return await self.call("UpdateAlias", {"KeyId": key_id, "AliasName": alias_name}, runtime)

    async def close(self):
        """Close HTTP connections owned by the client."""
        await self._engine.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
