from __future__ import annotations
"""Data models for credentials and S3 listings."""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
import re
from typing import Optional

DELIMITER = "/"

ACCESS_KEY_PATTERN = re.compile(r"^[A-Z0-9]{20}$")
BUCKET_PATTERN = re.compile(r"^[a-z0-9.-]{3,63}$")
REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")
MIN_SECRET_KEY_LENGTH = 40

AWS_REGIONS = (
    ("us-east-1", "US East (N. Virginia)"),
    ("us-east-2", "US East (Ohio)"),
    ("us-west-1", "US West (N. California)"),
    ("us-west-2", "US West (Oregon)"),
    ("eu-west-1", "Europe (Ireland)"),
    ("eu-west-2", "Europe (London)"),
    ("eu-central-1", "Europe (Frankfurt)"),
    ("ap-northeast-1", "Asia Pacific (Tokyo)"),
    ("ap-southeast-1", "Asia Pacific (Singapore)"),
    ("ap-southeast-2", "Asia Pacific (Sydney)"),
)


class ValidationError(ValueError):
    """Raised when credential fields are malformed."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        detail = "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        super().__init__(f"Invalid credentials ({detail})")


@dataclass(frozen=True)
class CredentialRecord:
    """AWS credentials scoped to a single bucket."""

    access_key_id: str
    secret_access_key: str
    region: str
    bucket: str

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(access_key_id={self.access_key_id!r}, "
            f"secret_access_key='***', region={self.region!r}, bucket={self.bucket!r})"
        )


@dataclass(frozen=True)
class CredentialPatch:
    """Partial update for a :class:`CredentialRecord`.

    Fields left as ``None`` are unchanged by :meth:`apply`.
    """

    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    bucket: Optional[str] = None

    def changed_fields(self) -> list[str]:
        return [item.name for item in fields(self) if getattr(self, item.name) is not None]

    def apply(self, record: CredentialRecord) -> CredentialRecord:
        changes = {name: getattr(self, name) for name in self.changed_fields()}
        return replace(record, **changes)


def validate_credentials(record: CredentialRecord) -> CredentialRecord:
    """Return ``record`` unchanged or raise :class:`ValidationError`."""

    errors: dict[str, str] = {}
    if not record.access_key_id:
        errors["access_key_id"] = "Access key ID is required"
    elif not ACCESS_KEY_PATTERN.match(record.access_key_id):
        errors["access_key_id"] = "Access key ID must be 20 uppercase letters or digits"

    if not record.secret_access_key:
        errors["secret_access_key"] = "Secret access key is required"
    elif len(record.secret_access_key) < MIN_SECRET_KEY_LENGTH:
        errors["secret_access_key"] = (
            f"Secret access key must be at least {MIN_SECRET_KEY_LENGTH} characters"
        )

    if not record.region:
        errors["region"] = "Region is required"
    elif not REGION_PATTERN.match(record.region):
        errors["region"] = f"'{record.region}' is not a valid region name"

    if not record.bucket:
        errors["bucket"] = "Bucket name is required"
    elif not BUCKET_PATTERN.match(record.bucket):
        errors["bucket"] = "Bucket name must be 3-63 lowercase letters, digits, dots or hyphens"

    if errors:
        raise ValidationError(errors)
    return record


@dataclass
class S3Object:
    """A single object returned by a listing call."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: str = ""
    storage_class: Optional[str] = None

    @property
    def name(self) -> str:
        return self.key.rstrip(DELIMITER).rsplit(DELIMITER, 1)[-1]


@dataclass
class ListingResult:
    """One page of a delimiter-based listing for a single path level."""

    prefix: str = ""
    objects: list[S3Object] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)
    is_truncated: bool = False
    continuation_token: Optional[str] = None

    @property
    def keys(self) -> list[str]:
        return [obj.key for obj in self.objects]


@dataclass
class UploadItem:
    """Content to upload to ``key``."""

    key: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class UploadResult:
    """Outcome of a single upload within a batch."""

    key: str
    etag: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
