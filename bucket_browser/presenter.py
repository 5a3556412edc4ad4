from __future__ import annotations
"""View-agnostic presenter that wraps controller operations."""
from dataclasses import replace
import logging
import threading
from typing import Callable, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from .controller import S3BrowserController
from .models import CredentialPatch, CredentialRecord, ListingResult, UploadItem, UploadResult
from .services import CatalogError, NotInitializedError, UploadBatchError
from .settings import AppSettings, SettingsStorage
from .ui_utils import PackageInfo, load_package_info
from .vault import VaultError


DispatchFn = Callable[[Callable[[], None]], None]
SuccessFn = Callable[[object], None]
ErrorFn = Callable[[str], None]
DoneFn = Callable[[], None]

LOGGER = logging.getLogger(__name__)


def _format_error(exc: Exception) -> str:
    return str(exc)


class S3BrowserPresenter:
    """Runs background operations and returns results via callbacks.

    Bucket operations take an ``on_not_initialized`` callback which is used
    instead of ``on_error`` when no credentials are loaded, so a view can ask
    for credentials rather than show a generic failure.
    """

    def __init__(
        self,
        *,
        controller: S3BrowserController | None = None,
        settings_storage: SettingsStorage | None = None,
        dispatch: DispatchFn | None = None,
    ) -> None:
        self._settings_storage = settings_storage or SettingsStorage()
        self._settings = self._settings_storage.load()
        self._controller = controller or S3BrowserController(settings=self._settings)
        self._controller.settings = self._settings
        self._dispatch = dispatch or (lambda func: func())
        self._package_info = load_package_info()

    @property
    def settings(self) -> AppSettings:
        return replace(self._settings)

    @property
    def package_info(self) -> PackageInfo:
        return self._package_info

    @property
    def is_initialized(self) -> bool:
        return self._controller.is_initialized

    @property
    def bucket(self) -> str | None:
        return self._controller.bucket

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._settings_storage.save(settings)
        self._controller.settings = settings

    def has_credentials(self) -> bool:
        try:
            return self._controller.has_credentials()
        except VaultError:
            LOGGER.exception("Unable to check stored credentials")
            return False

    def initialize(
        self,
        *,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Initialising S3 client from stored credentials")
        self._run(
            self._controller.init,
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
            description="initialise",
        )

    def save_credentials(
        self,
        record: CredentialRecord,
        *,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.save_credentials(record),
            on_success=lambda _: on_success(),
            on_error=on_error,
            on_done=on_done,
            description="save credentials",
        )

    def update_credentials(
        self,
        patch: CredentialPatch,
        *,
        on_success: Callable[[CredentialRecord], None],
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.update_credentials(patch),
            on_success=on_success,
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description="update credentials",
        )

    def delete_credentials(self, *, on_success: DoneFn, on_error: ErrorFn) -> None:
        self._run(
            self._controller.delete_credentials,
            on_success=lambda _: on_success(),
            on_error=on_error,
            description="delete credentials",
        )

    def test_credentials(
        self,
        record: CredentialRecord,
        *,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
    ) -> None:
        self._run(
            lambda: self._controller.test_credentials(record),
            on_success=on_success,
            on_error=on_error,
            description="test credentials",
        )

    def list_objects(
        self,
        *,
        prefix: str = "",
        continuation_token: str | None = None,
        on_success: Callable[[ListingResult], None],
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Listing objects for prefix '%s'", prefix)
        self._run(
            lambda: self._controller.list_objects(prefix, continuation_token),
            on_success=on_success,
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            on_done=on_done,
            description=f"list objects under '{prefix}'",
        )

    def upload_files(
        self,
        items: Iterable[UploadItem],
        *,
        on_success: Callable[[list[UploadResult]], None],
        on_error: Callable[[str, list[UploadResult]], None],
        on_not_initialized: DoneFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        """Upload ``items`` concurrently and report every file's outcome."""

        items = list(items)

        def task() -> None:
            try:
                results = self._controller.upload_many(items)
            except NotInitializedError:
                self._not_initialized(on_not_initialized, lambda message: on_error(message, []))
            except UploadBatchError as exc:
                LOGGER.warning("%s", exc)
                message = _format_error(exc)
                partial = exc.results
                self._dispatch(lambda: on_error(message, partial))
            except Exception as exc:
                LOGGER.exception("Unexpected upload error")
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message, []))
            else:
                LOGGER.debug("Uploaded %d file(s)", len(results))
                self._dispatch(lambda: on_success(results))
            finally:
                if on_done:
                    self._dispatch(on_done)

        threading.Thread(target=task, daemon=True).start()

    def get_download_url(
        self,
        *,
        key: str,
        expires_in: int | None = None,
        filename: str | None = None,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.get_download_url(key, expires_in, filename=filename),
            on_success=on_success,
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description=f"sign URL for '{key}'",
        )

    def delete_object(
        self,
        *,
        key: str,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.delete_object(key),
            on_success=lambda _: on_success(),
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description=f"delete '{key}'",
        )

    def copy_object(
        self,
        *,
        source_key: str,
        destination_key: str,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.copy_object(source_key, destination_key),
            on_success=lambda _: on_success(),
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description=f"copy '{source_key}'",
        )

    def rename_object(
        self,
        *,
        source_key: str,
        destination_key: str,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.rename_object(source_key, destination_key),
            on_success=lambda _: on_success(),
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description=f"rename '{source_key}'",
        )

    def create_folder(
        self,
        *,
        path: str,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
    ) -> None:
        self._run(
            lambda: self._controller.create_folder(path),
            on_success=on_success,
            on_error=on_error,
            on_not_initialized=on_not_initialized,
            description=f"create folder '{path}'",
        )

    def _run(
        self,
        operation: Callable[[], object],
        *,
        on_success: SuccessFn,
        on_error: ErrorFn,
        on_not_initialized: DoneFn | None = None,
        on_done: DoneFn | None = None,
        description: str,
    ) -> None:
        def task() -> None:
            try:
                result = operation()
            except NotInitializedError:
                self._not_initialized(on_not_initialized, on_error)
            except (CatalogError, VaultError, BotoCoreError, ClientError) as exc:
                LOGGER.exception("Failed to %s", description)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            except Exception as exc:
                LOGGER.exception("Unexpected error during %s", description)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            else:
                self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        threading.Thread(target=task, daemon=True).start()

    def _not_initialized(self, on_not_initialized: DoneFn | None, on_error: ErrorFn) -> None:
        LOGGER.debug("Operation attempted without credentials")
        if on_not_initialized:
            self._dispatch(on_not_initialized)
        else:
            self._dispatch(lambda: on_error("S3 client not initialized"))
