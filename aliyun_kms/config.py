"""Client configuration and per-call runtime options."""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, ValidationError

DEFAULT_API_VERSION = "2016-01-20"

ENDPOINT_HELP = "https://help.aliyun.com/document_detail/69006.html"

# Keys accepted from configuration dicts written for the JavaScript client
_LEGACY_CONFIG_KEYS = {
    "accessKey": "access_key_id",
    "accessKeyId": "access_key_id",
    "secretKey": "access_key_secret",
    "accessKeySecret": "access_key_secret",
    "securityToken": "security_token",
    "bearerToken": "bearer_token",
    "apiVersion": "api_version",
}


class ClientConfig(BaseSettings):
    """Connection settings, loaded from arguments or ALIYUN_KMS_* environment variables."""

    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None
    security_token: Optional[str] = None
    bearer_token: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION
    protocol: str = "https"

    model_config = SettingsConfigDict(
        env_prefix="ALIYUN_KMS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _rename_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            data = {_LEGACY_CONFIG_KEYS.get(k, k): v for k, v in data.items()}
        return data

    @field_validator("endpoint")
    @classmethod
    def _strip_scheme(cls, value: Optional[str]) -> Optional[str]:
        if value:
            for scheme in ("https://", "http://"):
                if value.startswith(scheme):
                    value = value[len(scheme):]
            value = value.rstrip("/")
        return value

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        value = value.lower()
        if value not in ("https", "http"):
            raise ValueError(f"protocol must be https or http, got {value!r}")
        return value

    def check(self, has_resolver: bool = False) -> None:
        """Raise ConfigurationError unless the client can be built from this config.

        Args:
            has_resolver: A credential resolver was injected, so static keys are optional
        """
        if not self.endpoint:
            raise ConfigurationError(
                f"config.endpoint must be passed in, please see {ENDPOINT_HELP} to choose one"
            )
        if has_resolver:
            return
        if not self.access_key_id:
            raise ConfigurationError("config.accessKeyId must be passed in")
        if not self.access_key_secret and not self.bearer_token:
            raise ConfigurationError("config.accessKeySecret must be passed in")

    @classmethod
    def from_value(cls, value: "ClientConfig | Mapping[str, Any] | None") -> "ClientConfig":
        """Build a config from an instance, a mapping, or the environment."""
        if isinstance(value, ClientConfig):
            return value
        try:
            return cls(**dict(value or {}))
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid client configuration: {e}") from e


class BackoffPolicy(str, Enum):
    """How long to wait before a retry."""
    NONE = "none"                 # Retry immediately
    FIXED = "fixed"               # Wait backoff_period every time
    RANDOM = "random"             # Wait uniform(0, backoff_period)
    EXPONENTIAL = "exponential"   # Double from backoff_period, capped at backoff_max


class RuntimeOptions(BaseModel):
    """Per-call execution options.

    Durations are in seconds. Field aliases match the option names used
    by the JavaScript client (``max-attempts``, ``ignoreSSL``).
    """

    timeout: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=3, ge=1, alias="max-attempts")
    backoff_policy: BackoffPolicy = BackoffPolicy.NONE
    backoff_period: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    ignore_ssl: bool = Field(default=False, alias="ignoreSSL")
    deadline: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @field_validator("backoff_policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in ("no", ""):
                return BackoffPolicy.NONE
        return value

    @classmethod
    def _field_name(cls, key: str) -> str:
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return key

    def merge(self, overrides: "RuntimeOptions | Mapping[str, Any] | None") -> "RuntimeOptions":
        """Return a copy with overrides applied.

        Mapping values of None fall back to this instance's value.

        Raises:
            ValidationError: If an override is unknown or out of range
        """
        if overrides is None:
            return self

        data = self.model_dump()
        if isinstance(overrides, RuntimeOptions):
            data.update(overrides.model_dump(exclude_unset=True))
        else:
            for key, value in overrides.items():
                if value is None:
                    continue
                data[self._field_name(key)] = value

        try:
            return RuntimeOptions.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid runtime options: {e}") from e


DEFAULT_RUNTIME_OPTIONS = RuntimeOptions()
