from __future__ import annotations
"""Connection configuration for the storage client."""
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .errors import ConfigurationError

DEFAULT_REGION = "us-east-1"
CANONICAL_DOMAIN = "amazonaws.com"
PATH_SEPARATOR = "/"

PROBE_TIMEOUT = 10.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 60.0
DEFAULT_MAX_ATTEMPTS = 3

# SigV4 presigned URLs cannot outlive seven days.
MAX_PRESIGN_EXPIRY = 7 * 24 * 60 * 60
DELETE_BATCH_SIZE = 1000

_ALLOWED_SCHEMES = ("http://", "https://")

# Accepted spellings for each field when building from a command payload.
_PAYLOAD_ALIASES = {
    "endpoint": ("endpoint", "endpoint_url", "endpointUrl"),
    "access_key": ("access_key", "accessKey"),
    "secret_key": ("secret_key", "secretKey"),
    "region": ("region",),
    "bucket": ("bucket", "default_bucket", "defaultBucket"),
    "connect_timeout": ("connect_timeout", "connectTimeout"),
    "read_timeout": ("read_timeout", "readTimeout"),
    "max_attempts": ("max_attempts", "maxAttempts"),
}


@dataclass(frozen=True)
class ClientConfiguration:
    """Endpoint, static credentials and region for one storage connection.

    Instances are validated on construction and cannot be changed afterwards,
    so an invalid configuration never reaches the operation layer.
    """

    endpoint: str
    access_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    region: str = ""
    bucket: Optional[str] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if not (self.access_key or "").strip():
            raise ConfigurationError("Access key cannot be empty")
        if not (self.secret_key or "").strip():
            raise ConfigurationError("Secret key cannot be empty")
        endpoint = (self.endpoint or "").strip()
        if not endpoint:
            raise ConfigurationError("Endpoint cannot be empty")
        if not endpoint.lower().startswith(_ALLOWED_SCHEMES):
            raise ConfigurationError("Endpoint must start with http:// or https://")
        if not urlparse(endpoint).hostname:
            raise ConfigurationError(f"Endpoint has no host: {endpoint}")
        if self.is_canonical_endpoint and not (self.region or "").strip():
            raise ConfigurationError("AWS S3 endpoints require a region to be specified")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("Timeouts must be greater than zero")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ClientConfiguration":
        """Build a configuration from a connection payload.

        Both ``snake_case`` and ``camelCase`` keys are accepted; unknown keys
        are ignored. Missing credentials surface as :class:`ConfigurationError`.
        """

        values: dict[str, Any] = {}
        for name, aliases in _PAYLOAD_ALIASES.items():
            for alias in aliases:
                if alias in payload and payload[alias] is not None:
                    values[name] = payload[alias]
                    break
        try:
            return cls(
                endpoint=str(values.get("endpoint", "")),
                access_key=str(values.get("access_key", "")),
                secret_key=str(values.get("secret_key", "")),
                region=str(values.get("region", "")),
                bucket=values.get("bucket") or None,
                connect_timeout=float(values.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
                read_timeout=float(values.get("read_timeout", DEFAULT_READ_TIMEOUT)),
                max_attempts=int(values.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid connection setting: {exc}") from exc

    @property
    def effective_region(self) -> str:
        return (self.region or "").strip() or DEFAULT_REGION

    @property
    def is_canonical_endpoint(self) -> bool:
        host = urlparse((self.endpoint or "").strip()).hostname or ""
        return CANONICAL_DOMAIN in host.lower()

    @property
    def masked_access_key(self) -> str:
        return f"{self.access_key[:8]}..."
