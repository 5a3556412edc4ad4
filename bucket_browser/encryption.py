from __future__ import annotations
"""OS keychain backed encryption for secrets stored on disk.

The keychain holds a random 256-bit master key; payloads are sealed with
AES-256-GCM and a fresh 12-byte nonce prepended to each ciphertext.
"""
import base64
import binascii
import logging
import secrets

import keyring
from keyring.backends import fail, null
from keyring.errors import KeyringError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

LOGGER = logging.getLogger(__name__)

SERVICE_NAME = "bucket-browser"
MASTER_KEY_ENTRY = "credentials-master-key"
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


class EncryptionUnavailableError(RuntimeError):
    """Raised when no usable keychain is present to hold the master key."""


class DecryptionFailedError(ValueError):
    """Raised when a ciphertext cannot be opened with the stored master key."""


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self._service_name = service_name

    def is_available(self) -> bool:
        try:
            backend = keyring.get_keyring()
        except KeyringError:
            return False
        return not isinstance(backend, (fail.Keyring, null.Keyring))

    def get_secret(self, entry: str) -> str:
        try:
            return keyring.get_password(self._service_name, entry) or ""
        except KeyringError:
            return ""

    def set_secret(self, entry: str, secret: str) -> None:
        keyring.set_password(self._service_name, entry, secret)


class PlatformEncryption:
    """String encryption tied to the current user's keychain."""

    def __init__(self, keychain: KeychainStore | None = None):
        self._keychain = keychain or KeychainStore()

    def is_available(self) -> bool:
        return self._keychain.is_available()

    def encrypt_string(self, plaintext: str) -> bytes:
        key = self._master_key(create=True)
        nonce = secrets.token_bytes(NONCE_SIZE)
        return nonce + AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)

    def decrypt_string(self, data: bytes) -> str:
        if len(data) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailedError("Encrypted data too short")
        key = self._master_key(create=False)
        try:
            plaintext = AESGCM(key).decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise DecryptionFailedError("Encrypted data could not be authenticated") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionFailedError("Decrypted data is not valid UTF-8") from exc

    def _master_key(self, *, create: bool) -> bytes:
        if not self.is_available():
            raise EncryptionUnavailableError("No usable OS keychain backend is available")
        stored = self._keychain.get_secret(MASTER_KEY_ENTRY)
        if stored:
            try:
                key = base64.b64decode(stored, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise DecryptionFailedError("Stored master key is not valid base64") from exc
            if len(key) != KEY_SIZE:
                raise DecryptionFailedError(
                    f"Stored master key must be {KEY_SIZE} bytes, got {len(key)}"
                )
            return key
        if not create:
            raise EncryptionUnavailableError("No master key found in the OS keychain")
        LOGGER.debug("Creating credentials master key in the OS keychain")
        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        try:
            self._keychain.set_secret(MASTER_KEY_ENTRY, base64.b64encode(key).decode("ascii"))
        except KeyringError as exc:
            raise EncryptionUnavailableError(f"Unable to store master key: {exc}") from exc
        return key
