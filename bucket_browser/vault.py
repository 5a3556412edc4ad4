from __future__ import annotations
"""Persistence for the single stored credential record."""
import base64
import binascii
import contextlib
import json
import logging
import os
from pathlib import Path

from .encryption import DecryptionFailedError, EncryptionUnavailableError, PlatformEncryption
from .models import CredentialRecord
from .settings import APP_DIR

LOGGER = logging.getLogger(__name__)

SLOT_NAME = "credentials"
KIND_PLAIN = "plain"
KIND_ENCRYPTED = "encrypted"

_FIELD_ALIASES = {
    "access_key_id": ("access_key_id", "accessKeyId"),
    "secret_access_key": ("secret_access_key", "secretAccessKey"),
}


class VaultError(RuntimeError):
    """Base class for credential vault failures."""


class PersistenceError(VaultError):
    """Raised when the backing store cannot be read or written."""


class DecryptionUnavailableError(VaultError):
    """Raised when an encrypted record exists but cannot be decrypted here."""


class CorruptDataError(VaultError):
    """Raised when the stored record has an unrecognised shape."""


def _read_field(entry: dict, name: str) -> object:
    for alias in _FIELD_ALIASES.get(name, (name,)):
        if alias in entry:
            return entry[alias]
    return None


class CredentialVault:
    """JSON-backed single-slot store for a :class:`CredentialRecord`.

    Access keys are sealed with :class:`PlatformEncryption` whenever the OS
    keychain is usable; region and bucket always stay readable.
    """

    def __init__(
        self,
        storage_path: str | Path | None = None,
        encryption: PlatformEncryption | None = None,
    ):
        if storage_path is None:
            storage_path = APP_DIR / "secure-credentials.json"
        self._path = Path(storage_path)
        self._encryption = encryption or PlatformEncryption()

    @property
    def storage_path(self) -> Path:
        return self._path

    def save(self, record: CredentialRecord) -> None:
        LOGGER.debug("Saving credentials for bucket '%s'", record.bucket)
        try:
            if self._encryption.is_available():
                entry = self._encrypt_record(record)
            else:
                LOGGER.warning("OS keychain unavailable; storing credentials without encryption")
                entry = {
                    "kind": KIND_PLAIN,
                    "access_key_id": record.access_key_id,
                    "secret_access_key": record.secret_access_key,
                    "region": record.region,
                    "bucket": record.bucket,
                }
        except (EncryptionUnavailableError, DecryptionFailedError, ValueError) as exc:
            raise PersistenceError(f"Failed to save credentials: {exc}") from exc
        self._write_slot(entry)

    def load(self) -> CredentialRecord | None:
        entry = self._read_slot()
        if entry is None:
            LOGGER.debug("No credentials found in %s", self._path)
            return None
        if not isinstance(entry, dict):
            raise CorruptDataError("Invalid credentials format in storage")

        kind = entry.get("kind")
        if kind is None:
            # untagged records: the encrypted variant is the one with an "encrypted" string
            kind = KIND_ENCRYPTED if isinstance(entry.get("encrypted"), str) else KIND_PLAIN

        if kind == KIND_ENCRYPTED:
            return self._decrypt_record(entry)
        if kind == KIND_PLAIN:
            record = self._plain_record(entry)
            self._migrate_plaintext(record)
            return record
        raise CorruptDataError(f"Unknown credentials kind '{kind}'")

    def delete(self) -> None:
        LOGGER.debug("Deleting stored credentials")
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete credentials: {exc}") from exc

    def has(self) -> bool:
        try:
            return self._read_slot() is not None
        except VaultError:
            return False

    def _encrypt_record(self, record: CredentialRecord) -> dict[str, str]:
        sensitive = json.dumps(
            {
                "access_key_id": record.access_key_id,
                "secret_access_key": record.secret_access_key,
            },
            separators=(",", ":"),
        )
        sealed = self._encryption.encrypt_string(sensitive)
        return {
            "kind": KIND_ENCRYPTED,
            "encrypted": base64.b64encode(sealed).decode("ascii"),
            "region": record.region,
            "bucket": record.bucket,
        }

    def _decrypt_record(self, entry: dict) -> CredentialRecord:
        blob = entry.get("encrypted")
        region = entry.get("region")
        bucket = entry.get("bucket")
        if not isinstance(blob, str) or not isinstance(region, str) or not isinstance(bucket, str):
            raise CorruptDataError("Encrypted credentials are missing required fields")
        if not self._encryption.is_available():
            raise DecryptionUnavailableError(
                "Encrypted credentials found but the OS keychain is not available"
            )
        try:
            sealed = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CorruptDataError("Encrypted credentials are not valid base64") from exc
        try:
            payload = json.loads(self._encryption.decrypt_string(sealed))
        except EncryptionUnavailableError as exc:
            raise DecryptionUnavailableError(str(exc)) from exc
        except (DecryptionFailedError, json.JSONDecodeError) as exc:
            raise CorruptDataError(f"Unable to decrypt credentials: {exc}") from exc
        if not isinstance(payload, dict):
            raise CorruptDataError("Invalid decrypted credentials format")

        access_key_id = _read_field(payload, "access_key_id")
        secret_access_key = _read_field(payload, "secret_access_key")
        if not access_key_id or not secret_access_key:
            raise CorruptDataError("Invalid decrypted credentials format")
        if not isinstance(access_key_id, str) or not isinstance(secret_access_key, str):
            raise CorruptDataError("Invalid decrypted credentials format")
        return CredentialRecord(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=region,
            bucket=bucket,
        )

    def _plain_record(self, entry: dict) -> CredentialRecord:
        values = {
            name: _read_field(entry, name)
            for name in ("access_key_id", "secret_access_key", "region", "bucket")
        }
        if not all(isinstance(value, str) for value in values.values()):
            raise CorruptDataError("Invalid credentials format in storage")
        return CredentialRecord(**values)

    def _migrate_plaintext(self, record: CredentialRecord) -> None:
        if not self._encryption.is_available():
            return
        LOGGER.info("Migrating plaintext credentials to encrypted storage")
        try:
            self.save(record)
        except PersistenceError:
            LOGGER.exception("Unable to migrate plaintext credentials")

    def _read_slot(self) -> object:
        if not self._path.exists():
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to read credentials: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptDataError(f"Credentials file is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise CorruptDataError("Credentials file has an unexpected layout")
        return data.get(SLOT_NAME)

    def _write_slot(self, entry: dict[str, str]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({SLOT_NAME: entry}, handle, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to save credentials: {exc}") from exc
