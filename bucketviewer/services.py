from __future__ import annotations
"""Business logic for interacting with an S3-compatible provider."""
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional, Sequence

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError

from .config import (
    DEFAULT_REGION,
    DELETE_BATCH_SIZE,
    MAX_PRESIGN_EXPIRY,
    PATH_SEPARATOR,
    PROBE_TIMEOUT,
    ClientConfiguration,
)
from .errors import (
    ConfigurationError,
    ObjectNotFoundError,
    StorageError,
    UnknownError,
    classify_error,
)
from .models import (
    BucketDescriptor,
    ListingPage,
    ObjectDescriptor,
    PresignedUrlResult,
    format_timestamp,
)

LOGGER = logging.getLogger(__name__)

# Buckets created before regional constraints existed report this value.
_LEGACY_LOCATIONS = {"EU": "eu-west-1"}


class S3StorageClient:
    """Owns one provider connection and exposes the object-storage operations.

    Every remote operation runs the blocking boto3 call in a worker thread and
    re-raises provider failures as :class:`~bucketviewer.errors.StorageError`
    subclasses. Instances are never mutated after construction and can be
    shared by concurrent callers.
    """

    def __init__(
        self,
        config: ClientConfiguration,
        *,
        client_factory: Callable[..., object] | None = None,
    ):
        self._config = config
        self._client = self._create_client(client_factory or _default_client_factory)

    @classmethod
    async def create(
        cls,
        config: ClientConfiguration,
        *,
        client_factory: Callable[..., object] | None = None,
    ) -> "S3StorageClient":
        """Build a client without blocking the event loop."""

        return await asyncio.to_thread(cls, config, client_factory=client_factory)

    @property
    def config(self) -> ClientConfiguration:
        return self._config

    @property
    def uses_path_style(self) -> bool:
        return not self._config.is_canonical_endpoint

    def _create_client(self, factory: Callable[..., object]):
        config = self._config
        options: dict[str, object] = {
            "signature_version": "s3v4",
            "connect_timeout": config.connect_timeout,
            "read_timeout": config.read_timeout,
            "retries": {"max_attempts": config.max_attempts, "mode": "standard"},
        }
        kwargs: dict[str, object] = {
            "region_name": config.effective_region,
            "aws_access_key_id": config.access_key,
            "aws_secret_access_key": config.secret_key,
        }
        if self.uses_path_style:
            # Third-party providers rarely support virtual-hosted buckets.
            kwargs["endpoint_url"] = config.endpoint.strip()
            options["s3"] = {"addressing_style": "path"}

        LOGGER.debug(
            "Creating storage client for %s (region=%s, access key=%s, path-style=%s)",
            config.endpoint,
            config.effective_region,
            config.masked_access_key,
            self.uses_path_style,
        )
        try:
            return factory("s3", config=Config(**options), **kwargs)
        except (BotoCoreError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc

    def _resolve_bucket(self, bucket: Optional[str]) -> str:
        resolved = bucket or self._config.bucket
        if not resolved:
            raise ConfigurationError("No bucket given and no default bucket configured")
        return resolved

    async def _call(self, method: str, **params):
        operation = getattr(self._client, method)
        try:
            return await asyncio.to_thread(operation, **params)
        except Exception as exc:
            error = classify_error(exc)
            LOGGER.debug("%s failed on %s: %r", method, self._config.endpoint, error)
            raise error from exc

    async def test_connection(self, *, timeout: float = PROBE_TIMEOUT) -> bool:
        """Issue a bucket listing only to prove reachability and credentials."""

        LOGGER.debug("Testing connection to %s", self._config.endpoint)
        try:
            await asyncio.wait_for(self._call("list_buckets"), timeout)
        except Exception as exc:
            raise classify_error(exc) from exc
        return True

    async def list_buckets(self) -> list[BucketDescriptor]:
        response = await self._call("list_buckets")
        buckets = [
            BucketDescriptor(
                name=bucket.get("Name", ""),
                creation_date=format_timestamp(bucket.get("CreationDate")),
            )
            for bucket in response.get("Buckets", [])
        ]
        LOGGER.debug("Found %d bucket(s) on %s", len(buckets), self._config.endpoint)
        return buckets

    async def list_objects(
        self,
        bucket: Optional[str] = None,
        *,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
        max_keys: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> ListingPage:
        """Return one page of objects.

        Parameters left as ``None`` are not sent at all; an empty ``prefix`` is
        sent as-is. To continue a truncated listing, pass back the page's
        ``next_continuation_token`` with the same bucket, prefix and delimiter.
        """

        params: dict[str, object] = {"Bucket": self._resolve_bucket(bucket)}
        if prefix is not None:
            params["Prefix"] = prefix
        if delimiter is not None:
            params["Delimiter"] = delimiter
        if max_keys is not None:
            if max_keys <= 0:
                raise ConfigurationError("max_keys must be greater than zero")
            params["MaxKeys"] = max_keys
        if continuation_token is not None:
            params["ContinuationToken"] = continuation_token

        response = await self._call("list_objects_v2", **params)
        objects = tuple(
            _describe_object(obj["Key"], obj, size_field="Size")
            for obj in response.get("Contents", [])
        )
        prefixes = tuple(
            common["Prefix"] for common in response.get("CommonPrefixes", []) if common.get("Prefix")
        )
        truncated = bool(response.get("IsTruncated", False))
        return ListingPage(
            objects=objects,
            common_prefixes=prefixes,
            is_truncated=truncated,
            next_continuation_token=response.get("NextContinuationToken") if truncated else None,
            prefix=prefix,
        )

    async def iter_objects(
        self,
        bucket: Optional[str] = None,
        *,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> AsyncIterator[ListingPage]:
        """Yield every page of a listing, following continuation tokens."""

        token: Optional[str] = None
        while True:
            page = await self.list_objects(
                bucket,
                prefix=prefix,
                delimiter=delimiter,
                max_keys=page_size,
                continuation_token=token,
            )
            yield page
            if not page.is_truncated or not page.next_continuation_token:
                return
            token = page.next_continuation_token

    async def get_object_info(self, bucket: Optional[str], key: str) -> ObjectDescriptor:
        response = await self._call("head_object", Bucket=self._resolve_bucket(bucket), Key=key)
        return _describe_object(key, response, size_field="ContentLength")

    async def delete_object(self, bucket: Optional[str], key: str) -> None:
        """Delete one object; deleting a missing key succeeds."""

        try:
            await self._call("delete_object", Bucket=self._resolve_bucket(bucket), Key=key)
        except ObjectNotFoundError:
            LOGGER.debug("Object %s was already absent", key)

    async def delete_objects(self, bucket: Optional[str], keys: Sequence[str]) -> list[str]:
        """Delete many objects and return the keys the provider failed to delete."""

        bucket_name = self._resolve_bucket(bucket)
        keys = list(keys)
        failed: list[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = await self._call(
                    "delete_objects",
                    Bucket=bucket_name,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except StorageError as exc:
                if start == 0:
                    raise
                # Earlier batches are already gone; report the rest as failed.
                LOGGER.warning("Bulk delete stopped at key %d of %d: %s", start, len(keys), exc)
                failed.extend(keys[start:])
                break
            errored = {error.get("Key") for error in response.get("Errors", []) or []}
            failed.extend(key for key in batch if key in errored)
        if failed:
            LOGGER.debug("%d of %d key(s) could not be deleted", len(failed), len(keys))
        return failed

    async def create_bucket(self, bucket: str, region: Optional[str] = None) -> None:
        params: dict[str, object] = {"Bucket": bucket}
        if region and region != DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        await self._call("create_bucket", **params)

    async def delete_bucket(self, bucket: str) -> None:
        await self._call("delete_bucket", Bucket=bucket)

    async def create_folder(self, bucket: Optional[str], path: str) -> str:
        """Write the zero-byte marker object for ``path`` and return its key."""

        if not (path or "").strip():
            raise ConfigurationError("Folder path cannot be empty")
        key = path if path.endswith(PATH_SEPARATOR) else f"{path}{PATH_SEPARATOR}"
        await self._call("put_object", Bucket=self._resolve_bucket(bucket), Key=key, Body=b"")
        return key

    def generate_download_url(
        self,
        bucket: Optional[str],
        key: str,
        expiry_seconds: int,
    ) -> PresignedUrlResult:
        params = {"Bucket": self._resolve_bucket(bucket), "Key": key}
        return self._presign("get_object", params, expiry_seconds)

    def generate_upload_url(
        self,
        bucket: Optional[str],
        key: str,
        expiry_seconds: int,
        content_type: Optional[str] = None,
    ) -> PresignedUrlResult:
        params = {"Bucket": self._resolve_bucket(bucket), "Key": key}
        if content_type:
            params["ContentType"] = content_type
        return self._presign("put_object", params, expiry_seconds)

    def _presign(self, client_method: str, params: dict[str, str], expiry_seconds: int) -> PresignedUrlResult:
        if (
            isinstance(expiry_seconds, bool)
            or not isinstance(expiry_seconds, int)
            or not 0 < expiry_seconds <= MAX_PRESIGN_EXPIRY
        ):
            raise UnknownError(
                f"Expiry must be between 1 and {MAX_PRESIGN_EXPIRY} seconds, got {expiry_seconds!r}"
            )
        try:
            url = self._client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=expiry_seconds,
            )
        except Exception as exc:
            raise UnknownError(str(exc)) from exc
        return PresignedUrlResult(url=url, expires_in=expiry_seconds)

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        await self._call(
            "copy_object",
            Bucket=dest_bucket,
            Key=dest_key,
            CopySource={"Bucket": source_bucket, "Key": source_key},
        )

    async def get_bucket_location(self, bucket: Optional[str] = None) -> str:
        response = await self._call("get_bucket_location", Bucket=self._resolve_bucket(bucket))
        location = response.get("LocationConstraint") or DEFAULT_REGION
        return _LEGACY_LOCATIONS.get(location, location)


def _describe_object(key: str, source: dict, *, size_field: str) -> ObjectDescriptor:
    return ObjectDescriptor(
        key=key,
        size=source.get(size_field),
        last_modified=format_timestamp(source.get("LastModified")),
        etag=source.get("ETag"),
        storage_class=source.get("StorageClass"),
        content_type=source.get("ContentType"),
    )


def _default_client_factory(service_name: str, **kwargs):
    # One session per client; boto3's default session is not thread-safe.
    return boto3.session.Session().client(service_name, **kwargs)
