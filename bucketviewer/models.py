from __future__ import annotations
"""Data models returned by the storage client."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .config import PATH_SEPARATOR


def is_folder_key(key: str) -> bool:
    """Folder markers are zero-byte objects whose key ends with the separator."""

    return key.endswith(PATH_SEPARATOR)


def format_timestamp(value: object) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class BucketDescriptor:
    """A bucket visible to the configured credentials."""

    name: str
    creation_date: Optional[str] = None
    region: Optional[str] = None


@dataclass(frozen=True)
class ObjectDescriptor:
    """Metadata about a single object."""

    key: str
    size: Optional[int] = None
    last_modified: Optional[str] = None
    etag: Optional[str] = None
    storage_class: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return is_folder_key(self.key)


@dataclass(frozen=True)
class ListingPage:
    """One page of a listing, in the order the provider returned it."""

    objects: tuple[ObjectDescriptor, ...] = field(default_factory=tuple)
    common_prefixes: tuple[str, ...] = field(default_factory=tuple)
    is_truncated: bool = False
    next_continuation_token: Optional[str] = None
    prefix: Optional[str] = None

    @property
    def keys(self) -> list[str]:
        return [obj.key for obj in self.objects]


@dataclass(frozen=True)
class PresignedUrlResult:
    url: str
    expires_in: int
