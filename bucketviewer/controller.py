from __future__ import annotations
"""Command surface: connection payloads in, results or display messages out."""
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar, Union
from urllib.parse import urlparse

import httpx

from .config import PROBE_TIMEOUT, ClientConfiguration
from .connections import ConnectionCache
from .errors import StorageError, format_error
from .models import BucketDescriptor, ListingPage, ObjectDescriptor, PresignedUrlResult
from .services import S3StorageClient

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
ConnectionPayload = Union[Mapping[str, Any], ClientConfiguration]


class CommandError(RuntimeError):
    """Raised with a display-ready sentence when a command fails."""


class NotConnectedError(CommandError):
    """Raised when a named connection is used before connecting."""


async def ping_endpoint(
    endpoint: str,
    *,
    timeout: float = PROBE_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Check that ``endpoint`` answers HTTP at all; any status code counts."""

    endpoint = (endpoint or "").strip()
    if not endpoint.lower().startswith(("http://", "https://")):
        raise CommandError("Endpoint must start with http:// or https://")
    host = urlparse(endpoint).hostname
    if not host:
        raise CommandError(f"Could not extract host from URL: {endpoint}")

    LOGGER.debug("Pinging endpoint %s", endpoint)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(endpoint)
    except httpx.TimeoutException as exc:
        raise CommandError(f"Connection timeout to {host}") from exc
    except httpx.ConnectError as exc:
        raise CommandError(f"Connection refused by {host}") from exc
    except httpx.HTTPError as exc:
        raise CommandError(f"Network error: {exc}") from exc
    reason = response.reason_phrase or "Unknown"
    return f"Endpoint reachable - HTTP {response.status_code}: {reason}"


class StorageController:
    """Coordinates UI-initiated calls with :class:`S3StorageClient`.

    Calls that carry their own connection payload build a throwaway client.
    ``connect``/``disconnect`` and :meth:`list_buckets` work on the shared
    clients held by the injected :class:`ConnectionCache`.
    """

    def __init__(
        self,
        cache: ConnectionCache | None = None,
        *,
        client_factory: Callable[..., object] | None = None,
    ):
        self._client_factory = client_factory
        self._cache = cache if cache is not None else ConnectionCache(client_factory)

    @property
    def cache(self) -> ConnectionCache:
        return self._cache

    def is_connected(self, name: str) -> bool:
        return name in self._cache

    async def ping_endpoint(self, endpoint: str) -> str:
        return await ping_endpoint(endpoint)

    async def test_connection(self, payload: ConnectionPayload) -> bool:
        return await self._with_client(
            "test connection",
            payload,
            lambda client: client.test_connection(),
        )

    async def connect(self, name: str, payload: ConnectionPayload) -> bool:
        config = self._configuration(payload)
        try:
            await self._cache.get_or_create(name, config)
        except StorageError as exc:
            LOGGER.exception("Connection error for '%s'", name)
            raise CommandError(format_error("connect", exc)) from exc
        LOGGER.debug("Connected '%s' to %s", name, config.endpoint)
        return True

    async def disconnect(self, name: str) -> None:
        self._cache.remove(name)

    async def list_buckets(self, name: str) -> list[BucketDescriptor]:
        client = self._cache.get(name)
        if client is None:
            raise NotConnectedError(f"Connection '{name}' is not connected; connect before listing buckets")
        return await self._guard("list buckets", client.list_buckets())

    async def list_buckets_with_config(self, payload: ConnectionPayload) -> list[BucketDescriptor]:
        return await self._with_client("list buckets", payload, lambda client: client.list_buckets())

    async def list_objects(
        self,
        payload: ConnectionPayload,
        bucket: str,
        *,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
        max_keys: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> ListingPage:
        return await self._with_client(
            "list objects",
            payload,
            lambda client: client.list_objects(
                bucket,
                prefix=prefix,
                delimiter=delimiter,
                max_keys=max_keys,
                continuation_token=continuation_token,
            ),
        )

    async def get_object_info(self, payload: ConnectionPayload, bucket: str, key: str) -> ObjectDescriptor:
        return await self._with_client(
            "get object info",
            payload,
            lambda client: client.get_object_info(bucket, key),
        )

    async def delete_object(self, payload: ConnectionPayload, bucket: str, key: str) -> None:
        await self._with_client(
            "delete object",
            payload,
            lambda client: client.delete_object(bucket, key),
        )

    async def delete_objects(self, payload: ConnectionPayload, bucket: str, keys: Sequence[str]) -> list[str]:
        return await self._with_client(
            "delete objects",
            payload,
            lambda client: client.delete_objects(bucket, keys),
        )

    async def create_bucket(self, payload: ConnectionPayload, bucket: str, region: Optional[str] = None) -> None:
        await self._with_client(
            "create bucket",
            payload,
            lambda client: client.create_bucket(bucket, region),
        )

    async def delete_bucket(self, payload: ConnectionPayload, bucket: str) -> None:
        await self._with_client("delete bucket", payload, lambda client: client.delete_bucket(bucket))

    async def create_folder(self, payload: ConnectionPayload, bucket: str, path: str) -> str:
        return await self._with_client(
            "create folder",
            payload,
            lambda client: client.create_folder(bucket, path),
        )

    async def generate_download_url(
        self,
        payload: ConnectionPayload,
        bucket: str,
        key: str,
        expiry_seconds: int,
    ) -> PresignedUrlResult:
        return await self._with_client(
            "generate download URL",
            payload,
            lambda client: _completed(client.generate_download_url(bucket, key, expiry_seconds)),
        )

    async def generate_upload_url(
        self,
        payload: ConnectionPayload,
        bucket: str,
        key: str,
        expiry_seconds: int,
        content_type: Optional[str] = None,
    ) -> PresignedUrlResult:
        return await self._with_client(
            "generate upload URL",
            payload,
            lambda client: _completed(
                client.generate_upload_url(bucket, key, expiry_seconds, content_type)
            ),
        )

    async def copy_object(
        self,
        payload: ConnectionPayload,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        await self._with_client(
            "copy object",
            payload,
            lambda client: client.copy_object(source_bucket, source_key, dest_bucket, dest_key),
        )

    async def get_bucket_location(self, payload: ConnectionPayload, bucket: str) -> str:
        return await self._with_client(
            "get bucket location",
            payload,
            lambda client: client.get_bucket_location(bucket),
        )

    def shutdown(self) -> None:
        self._cache.clear()

    def _configuration(self, payload: ConnectionPayload) -> ClientConfiguration:
        if isinstance(payload, ClientConfiguration):
            return payload
        try:
            return ClientConfiguration.from_mapping(payload)
        except StorageError as exc:
            raise CommandError(f"Invalid connection settings: {exc.detail or exc}") from exc

    async def _with_client(
        self,
        operation: str,
        payload: ConnectionPayload,
        action: Callable[[S3StorageClient], Awaitable[T]],
    ) -> T:
        config = self._configuration(payload)

        async def run() -> T:
            client = await S3StorageClient.create(config, client_factory=self._client_factory)
            return await action(client)

        return await self._guard(operation, run())

    async def _guard(self, operation: str, pending: Awaitable[T]) -> T:
        try:
            return await pending
        except StorageError as exc:
            LOGGER.exception("Failed to %s", operation)
            raise CommandError(format_error(operation, exc)) from exc
        except Exception as exc:
            LOGGER.exception("Unexpected error while trying to %s", operation)
            raise CommandError(format_error(operation, exc)) from exc


async def _completed(value: T) -> T:
    return value
