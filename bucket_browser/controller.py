from __future__ import annotations
"""Controller that owns the credential vault and the active bucket client."""

import logging
from pathlib import Path
from typing import Callable, Iterable

from .models import (
    CredentialPatch,
    CredentialRecord,
    ListingResult,
    UploadItem,
    UploadResult,
    validate_credentials,
)
from .services import NotInitializedError, S3CatalogService
from .settings import AppSettings
from .vault import CredentialVault

LOGGER = logging.getLogger(__name__)

ServiceFactory = Callable[..., S3CatalogService]


class S3BrowserController:
    """Coordinates user actions with the vault and :class:`S3CatalogService`.

    At most one catalog client is open at a time; it is replaced whenever the
    stored credentials change.
    """

    def __init__(
        self,
        vault: CredentialVault | None = None,
        settings: AppSettings | None = None,
        service_factory: ServiceFactory | None = None,
    ):
        self._vault = vault or CredentialVault()
        self._settings = settings or AppSettings()
        self._service_factory = service_factory or S3CatalogService
        self._service: S3CatalogService | None = None

    @property
    def is_initialized(self) -> bool:
        return self._service is not None

    @property
    def bucket(self) -> str | None:
        return self._service.bucket if self._service else None

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @settings.setter
    def settings(self, settings: AppSettings) -> None:
        # applied to the next client that gets built
        self._settings = settings

    @property
    def storage_path(self) -> Path:
        return self._vault.storage_path

    def init(self) -> bool:
        """Open a client for the stored credentials.

        Returns whether a stored record existed.
        """

        self._discard_service()
        record = self._vault.load()
        if record is None:
            LOGGER.debug("No stored credentials; client not initialised")
            return False
        self._service = self._service_factory(record, settings=self._settings)
        return True

    def has_credentials(self) -> bool:
        return self._vault.has()

    def load_credentials(self) -> CredentialRecord | None:
        return self._vault.load()

    def save_credentials(self, record: CredentialRecord) -> None:
        validate_credentials(record)
        self._vault.save(record)
        self.init()

    def update_credentials(self, patch: CredentialPatch) -> CredentialRecord:
        current = self._vault.load()
        if current is None:
            raise NotInitializedError("No stored credentials to update")
        updated = patch.apply(current)
        LOGGER.debug("Updating credential field(s): %s", ", ".join(patch.changed_fields()))
        self.save_credentials(updated)
        return updated

    def delete_credentials(self) -> None:
        self._vault.delete()
        self._discard_service()

    def test_credentials(self, record: CredentialRecord) -> bool:
        """Probe ``record`` without persisting it or touching the active client."""

        validate_credentials(record)
        candidate = self._service_factory(record, settings=self._settings)
        try:
            return candidate.test_connection()
        finally:
            candidate.close()

    def test_connection(self) -> bool:
        if self._service is None:
            return False
        return self._service.test_connection()

    def list_objects(self, prefix: str = "", continuation_token: str | None = None) -> ListingResult:
        return self._require_service().list_objects(prefix, continuation_token)

    def list_level(self, prefix: str = "") -> ListingResult:
        return self._require_service().list_level(prefix)

    def upload_file(self, content: bytes, key: str, content_type: str | None = None) -> str:
        return self._require_service().upload_file(content, key, content_type)

    def upload_path(self, source_path: str | Path, key: str) -> str:
        return self._require_service().upload_path(source_path, key)

    def upload_many(self, items: Iterable[UploadItem]) -> list[UploadResult]:
        return self._require_service().upload_many(
            items, max_workers=self._settings.upload_concurrency
        )

    def get_download_url(
        self,
        key: str,
        expires_in: int | None = None,
        *,
        filename: str | None = None,
    ) -> str:
        return self._require_service().get_download_url(
            key,
            self._settings.presign_expires_in if expires_in is None else expires_in,
            filename=filename,
        )

    def delete_object(self, key: str) -> None:
        self._require_service().delete_object(key)

    def copy_object(self, source_key: str, destination_key: str) -> None:
        self._require_service().copy_object(source_key, destination_key)

    def rename_object(self, source_key: str, destination_key: str) -> None:
        self._require_service().rename_object(source_key, destination_key)

    def create_folder(self, path: str) -> str:
        return self._require_service().create_folder(path)

    def close(self) -> None:
        self._discard_service()

    def _require_service(self) -> S3CatalogService:
        if self._service is None:
            raise NotInitializedError("S3 client not initialized")
        return self._service

    def _discard_service(self) -> None:
        service, self._service = self._service, None
        if service is not None:
            service.close()
