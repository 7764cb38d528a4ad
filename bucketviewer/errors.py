from __future__ import annotations
"""Client-visible failure kinds and the single provider-error mapping."""
import asyncio
from typing import Optional

from botocore import exceptions as botocore_errors


class StorageError(Exception):
    """Base class for every failure reported by the storage client."""

    kind = "unknown"
    reason = "Storage error"
    shows_detail = True

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        if self.shows_detail and self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason


class InvalidCredentialsError(StorageError):
    """The access key id is unknown or the request signature did not match."""

    kind = "invalid_credentials"
    reason = "Invalid access credentials"
    shows_detail = False


class PermissionDeniedError(StorageError):
    """The caller is authenticated but not allowed to perform the request."""

    kind = "permission_denied"
    reason = "Permission denied"
    shows_detail = False


class BucketNotFoundError(StorageError):
    kind = "bucket_not_found"
    reason = "Bucket not found"
    shows_detail = False


class ObjectNotFoundError(StorageError):
    kind = "object_not_found"
    reason = "Object not found"
    shows_detail = False


class NetworkError(StorageError):
    """Timeout, refused connection, DNS, TLS or transport failure."""

    kind = "network_error"
    reason = "Network error"


class ConfigurationError(StorageError):
    """Malformed input detected locally, before any request is sent."""

    kind = "configuration_error"
    reason = "Configuration error"


class UnknownError(StorageError):
    kind = "unknown_error"
    reason = "Unknown error"


# Provider error codes, as found in ``ClientError.response["Error"]["Code"]``.
ERROR_CODE_KINDS: dict[str, type[StorageError]] = {
    "InvalidAccessKeyId": InvalidCredentialsError,
    "SignatureDoesNotMatch": InvalidCredentialsError,
    "InvalidToken": InvalidCredentialsError,
    "AuthorizationHeaderMalformed": InvalidCredentialsError,
    "AccessDenied": PermissionDeniedError,
    "AllAccessDisabled": PermissionDeniedError,
    "Forbidden": PermissionDeniedError,
    "403": PermissionDeniedError,
    "NoSuchBucket": BucketNotFoundError,
    "NoSuchKey": ObjectNotFoundError,
    "NotFound": ObjectNotFoundError,
    "404": ObjectNotFoundError,
    "RequestTimeout": NetworkError,
    "InvalidBucketName": ConfigurationError,
}

NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    botocore_errors.ConnectionError,
    botocore_errors.HTTPClientError,
)

CONFIGURATION_ERROR_TYPES: tuple[type[BaseException], ...] = (
    botocore_errors.ParamValidationError,
    botocore_errors.NoCredentialsError,
    botocore_errors.PartialCredentialsError,
    botocore_errors.InvalidRegionError,
)

# Fallback for errors without a structured code. Evaluated top to bottom,
# case-insensitively, against the message and the repr of the error.
MESSAGE_PATTERNS: tuple[tuple[str, type[StorageError]], ...] = (
    ("InvalidAccessKeyId", InvalidCredentialsError),
    ("SignatureDoesNotMatch", InvalidCredentialsError),
    ("AccessDenied", PermissionDeniedError),
    ("NoSuchBucket", BucketNotFoundError),
    ("NoSuchKey", ObjectNotFoundError),
    ("timeout", NetworkError),
    ("timed out", NetworkError),
    ("connection", NetworkError),
    ("dns", NetworkError),
    ("resolve", NetworkError),
    ("name or service not known", NetworkError),
    ("tls", NetworkError),
    ("ssl", NetworkError),
    ("certificate", NetworkError),
    ("Invalid URI", ConfigurationError),
    ("Invalid endpoint", ConfigurationError),
)


def _error_code(exc: BaseException) -> Optional[str]:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    code = (response.get("Error") or {}).get("Code")
    return str(code) if code else None


def _message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def classify_error(exc: BaseException) -> StorageError:
    """Map any exception raised by a provider call onto the taxonomy.

    Structured information wins: an error code carried by the provider
    response decides on its own, unlisted codes included. Errors without a
    code are matched by exception type, then by :data:`MESSAGE_PATTERNS`.
    Anything left over becomes :class:`UnknownError` carrying the original
    message.
    """

    if isinstance(exc, StorageError):
        return exc

    message = _message(exc)
    code = _error_code(exc)
    if code is not None:
        return ERROR_CODE_KINDS.get(code, UnknownError)(message)

    if isinstance(exc, NETWORK_ERROR_TYPES):
        return NetworkError(message)
    if isinstance(exc, CONFIGURATION_ERROR_TYPES):
        return ConfigurationError(message)

    haystack = f"{message}\n{exc!r}".lower()
    for pattern, kind in MESSAGE_PATTERNS:
        if pattern.lower() in haystack:
            return kind(message)
    return UnknownError(message)


def format_error(operation: str, exc: BaseException) -> str:
    """Render a failure as one sentence naming the operation and the reason."""

    return f"Failed to {operation}: {classify_error(exc)}"
