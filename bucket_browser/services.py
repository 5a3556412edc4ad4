from __future__ import annotations
"""Business logic for interacting with the S3 bucket."""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
import logging
import mimetypes
from pathlib import Path
from typing import Callable, Iterable, Iterator

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .models import DELIMITER, CredentialRecord, ListingResult, S3Object, UploadItem, UploadResult
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FOLDER_CONTENT_TYPE = "application/x-directory"
DEFAULT_EXPIRES_IN = 3600

REMOTE_ERRORS = (BotoCoreError, ClientError)


class NotInitializedError(RuntimeError):
    """Raised when a bucket operation is attempted without an open client."""


class CatalogError(RuntimeError):
    """Base class for failed remote bucket operations."""


class ListingError(CatalogError):
    """Raised when listing objects fails."""


class UploadError(CatalogError):
    """Raised when writing an object fails."""


class DeleteError(CatalogError):
    """Raised when deleting an object fails."""


class CopyError(CatalogError):
    """Raised when a server-side copy fails."""


class PresignError(CatalogError):
    """Raised when a download URL cannot be signed."""


class UploadBatchError(UploadError):
    """Raised when at least one upload in a batch fails."""

    def __init__(self, results: list[UploadResult]):
        self.results = list(results)
        failed = [result for result in self.results if not result.ok]
        super().__init__(
            f"{len(failed)} of {len(self.results)} upload(s) failed: "
            + ", ".join(result.key for result in failed)
        )

    @property
    def failed(self) -> list[UploadResult]:
        return [result for result in self.results if not result.ok]

    @property
    def succeeded(self) -> list[UploadResult]:
        return [result for result in self.results if result.ok]


def normalize_folder_key(path: str) -> str:
    return path if path.endswith(DELIMITER) else f"{path}{DELIMITER}"


class S3CatalogService:
    """Bucket operations for a single credential record.

    One instance owns one boto3 client. Build a new instance when the
    credentials change and :meth:`close` the previous one first.
    """

    def __init__(
        self,
        record: CredentialRecord,
        *,
        settings: AppSettings | None = None,
        client_factory: Callable[..., object] | None = None,
    ):
        self._record = record
        self._settings = settings or AppSettings()
        self._client_factory = client_factory or boto3.client
        self._client = self._create_client()
        LOGGER.debug(
            "S3 client initialised for region '%s', bucket '%s'",
            record.region,
            record.bucket,
        )

    @property
    def bucket(self) -> str:
        return self._record.bucket

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        close = getattr(client, "close", None)
        if close:
            close()
        LOGGER.debug("S3 client for bucket '%s' closed", self._record.bucket)

    def test_connection(self) -> bool:
        """Return whether the bucket is reachable with these credentials."""

        client = self._require_client()
        try:
            client.head_bucket(Bucket=self.bucket)
        except REMOTE_ERRORS as exc:
            LOGGER.debug("Connection test for bucket '%s' failed: %s", self.bucket, exc)
            return False
        return True

    def list_objects(
        self,
        prefix: str = "",
        continuation_token: str | None = None,
    ) -> ListingResult:
        """Return one page of a single hierarchy level under ``prefix``.

        Raises:
            ValueError: when ``prefix`` starts with the delimiter.
            ListingError: when the listing call fails.
        """

        prefix = prefix or ""
        if prefix.startswith(DELIMITER):
            raise ValueError(f"prefix must not start with '{DELIMITER}'")
        client = self._require_client()

        list_params = {
            "Bucket": self.bucket,
            "Delimiter": DELIMITER,
            "MaxKeys": self._settings.page_size,
        }
        if prefix:
            list_params["Prefix"] = prefix
        if continuation_token:
            list_params["ContinuationToken"] = continuation_token

        LOGGER.debug("Listing objects with prefix '%s'", prefix)
        try:
            response = client.list_objects_v2(**list_params)
        except REMOTE_ERRORS as exc:
            raise ListingError(f"Failed to list objects: {exc}") from exc

        result = self._build_listing(prefix, response)
        LOGGER.debug(
            "Found %d object(s) and %d folder(s) under '%s'",
            len(result.objects),
            len(result.folders),
            prefix,
        )
        return result

    def iter_pages(self, prefix: str = "") -> Iterator[ListingResult]:
        """Yield every page of a level, following continuation tokens."""

        token: str | None = None
        while True:
            page = self.list_objects(prefix, token)
            yield page
            if not (page.is_truncated and page.continuation_token):
                return
            token = page.continuation_token

    def list_level(self, prefix: str = "") -> ListingResult:
        """Return the whole level under ``prefix`` merged into one result."""

        merged = ListingResult(prefix=prefix or "")
        seen_keys: set[str] = set()
        seen_folders: set[str] = set()
        for page in self.iter_pages(prefix):
            for obj in page.objects:
                if obj.key not in seen_keys:
                    seen_keys.add(obj.key)
                    merged.objects.append(obj)
            for folder in page.folders:
                if folder not in seen_folders:
                    seen_folders.add(folder)
                    merged.folders.append(folder)
        return merged

    def upload_file(self, content: bytes, key: str, content_type: str | None = None) -> str:
        """Store ``content`` at ``key`` with a single PUT and return its ETag.

        An existing object at ``key`` is replaced.
        """

        if not key:
            raise ValueError("key must be a non-empty string")
        client = self._require_client()
        LOGGER.debug("Uploading %d byte(s) to '%s'", len(content), key)
        try:
            response = client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except REMOTE_ERRORS as exc:
            raise UploadError(f"Failed to upload '{key}': {exc}") from exc
        return response.get("ETag") or ""

    def upload_path(self, source_path: str | Path, key: str) -> str:
        path = Path(source_path)
        content_type, _ = mimetypes.guess_type(path.name)
        return self.upload_file(path.read_bytes(), key, content_type)

    def upload_many(
        self,
        items: Iterable[UploadItem],
        *,
        max_workers: int | None = None,
    ) -> list[UploadResult]:
        """Upload every item concurrently and wait for all of them.

        Raises:
            UploadBatchError: when any upload fails; ``results`` lists every item.
        """

        items = list(items)
        if not items:
            return []
        self._require_client()
        workers = max(1, min(max_workers or self._settings.upload_concurrency, len(items)))

        def upload(item: UploadItem) -> UploadResult:
            try:
                etag = self.upload_file(item.content, item.key, item.content_type)
            except (UploadError, ValueError, NotInitializedError) as exc:
                LOGGER.warning("Upload of '%s' failed: %s", item.key, exc)
                return UploadResult(key=item.key, error=str(exc))
            except Exception as exc:
                LOGGER.exception("Unexpected error uploading '%s'", item.key)
                return UploadResult(key=item.key, error=str(exc) or type(exc).__name__)
            return UploadResult(key=item.key, etag=etag)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(upload, items))

        if any(not result.ok for result in results):
            raise UploadBatchError(results)
        return results

    def get_download_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRES_IN,
        *,
        filename: str | None = None,
    ) -> str:
        """Create a presigned GET URL for ``key``; existence is not checked."""

        if not key:
            raise ValueError("key must be a non-empty string")
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")
        client = self._require_client()
        params: dict[str, str] = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'
        try:
            return client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=expires_in,
            )
        except REMOTE_ERRORS as exc:
            raise PresignError(f"Failed to generate download URL for '{key}': {exc}") from exc

    def delete_object(self, key: str) -> None:
        client = self._require_client()
        LOGGER.debug("Deleting object '%s'", key)
        try:
            client.delete_object(Bucket=self.bucket, Key=key)
        except REMOTE_ERRORS as exc:
            raise DeleteError(f"Failed to delete '{key}': {exc}") from exc

    def copy_object(self, source_key: str, destination_key: str) -> None:
        client = self._require_client()
        LOGGER.debug("Copying object '%s' to '%s'", source_key, destination_key)
        try:
            client.copy_object(
                Bucket=self.bucket,
                Key=destination_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
            )
        except REMOTE_ERRORS as exc:
            raise CopyError(
                f"Failed to copy '{source_key}' to '{destination_key}': {exc}"
            ) from exc

    def rename_object(self, source_key: str, destination_key: str) -> None:
        """Copy ``source_key`` to ``destination_key`` and delete the source."""

        if source_key == destination_key:
            return
        self.copy_object(source_key, destination_key)
        self.delete_object(source_key)

    def create_folder(self, path: str) -> str:
        """Write a zero-length folder marker and return its key."""

        if not path or path == DELIMITER:
            raise ValueError("folder path must be a non-empty string")
        folder_key = normalize_folder_key(path)
        client = self._require_client()
        LOGGER.debug("Creating folder '%s'", folder_key)
        try:
            client.put_object(
                Bucket=self.bucket,
                Key=folder_key,
                Body=b"",
                ContentType=FOLDER_CONTENT_TYPE,
            )
        except REMOTE_ERRORS as exc:
            raise UploadError(f"Failed to create folder '{folder_key}': {exc}") from exc
        return folder_key

    def _create_client(self):
        settings = self._settings
        config = Config(
            signature_version="s3v4",
            region_name=self._record.region,
            retries={"max_attempts": settings.max_attempts, "mode": "adaptive"},
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
        )
        client_kwargs = {
            "region_name": self._record.region,
            "aws_access_key_id": self._record.access_key_id,
            "aws_secret_access_key": self._record.secret_access_key,
            "config": config,
        }
        if settings.endpoint_url:
            client_kwargs["endpoint_url"] = settings.endpoint_url
        return self._client_factory("s3", **client_kwargs)

    def _require_client(self):
        if self._client is None:
            raise NotInitializedError("S3 client has been closed")
        return self._client

    def _build_listing(self, prefix: str, response: dict) -> ListingResult:
        folders: list[str] = []
        for common in response.get("CommonPrefixes") or []:
            folder = common.get("Prefix")
            if folder and folder not in folders:
                folders.append(folder)
        folder_set = set(folders)

        objects: list[S3Object] = []
        for entry in response.get("Contents") or []:
            key = entry.get("Key")
            # the level's own folder marker is not a child of the level
            if not key or key == prefix or key in folder_set:
                continue
            objects.append(
                S3Object(
                    key=key,
                    size=max(int(entry.get("Size") or 0), 0),
                    last_modified=entry.get("LastModified") or datetime.now(timezone.utc),
                    etag=entry.get("ETag") or "",
                    storage_class=entry.get("StorageClass"),
                )
            )

        truncated = bool(response.get("IsTruncated", False))
        return ListingResult(
            prefix=prefix,
            objects=objects,
            folders=folders,
            is_truncated=truncated,
            continuation_token=response.get("NextContinuationToken") if truncated else None,
        )
