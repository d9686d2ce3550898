"""
aliyun-kms - asynchronous client for the Alibaba Cloud KMS API.

Features:
- HMAC-SHA1 request signing over a canonical query string
- Static, environment and provider-backed (STS / bearer token) credentials
- Retries of 5xx and timeouts with none / fixed / random / exponential backoff
- Optional cumulative deadline across attempts
"""

from aliyun_kms.client import KMSClient
from aliyun_kms.config import (
    BackoffPolicy,
    ClientConfig,
    RuntimeOptions,
)
from aliyun_kms.credentials import (
    Credential,
    CredentialResolver,
    StaticCredentialResolver,
    ProviderCredentialResolver,
    EnvironmentCredentialResolver,
)
from aliyun_kms.classifier import (
    Success,
    RetryableFailure,
    TerminalFailure,
    classify,
)
from aliyun_kms.engine import RetryEngine, backoff_delay
from aliyun_kms.errors import (
    KMSError,
    ConfigurationError,
    CredentialError,
    ValidationError,
    SigningError,
    TransportError,
    RetryableTransportError,
    TerminalResponseError,
    ExhaustionError,
)
from aliyun_kms.signer import sign

__version__ = "1.0.0"

__all__ = [
    # Client
    "KMSClient",
    # Configuration
    "BackoffPolicy",
    "ClientConfig",
    "RuntimeOptions",
    # Credentials
    "Credential",
    "CredentialResolver",
    "StaticCredentialResolver",
    "ProviderCredentialResolver",
    "EnvironmentCredentialResolver",
    # Execution
    "RetryEngine",
    "backoff_delay",
    "sign",
    "classify",
    "Success",
    "RetryableFailure",
    "TerminalFailure",
    # Errors
    "KMSError",
    "ConfigurationError",
    "CredentialError",
    "ValidationError",
    "SigningError",
    "TransportError",
    "RetryableTransportError",
    "TerminalResponseError",
    "ExhaustionError",
]
