"""Readers and writers for the persisted secret artifacts.

The serving process only reads: the pepper and PIN hash once at startup, the
key ring and encrypted store on every check. Read failures come back as
typed results instead of exceptions so the caller decides what a missing
file or a broken envelope means at that point.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from pwtrainer.crypto import EnvelopeError, PayloadError, decrypt_store, encrypt_store
from pwtrainer.files import write_private_file
from pwtrainer.keyring import KeyRing, KeyRingError, read_keyring
from pwtrainer.settings import Settings

LOGGER = logging.getLogger(__name__)


class MaterialError(enum.Enum):
    PEPPER_MISSING = "Pepper file must exist"
    PEPPER_EMPTY = "Pepper file must not be empty"
    PIN_HASH_MISSING = "PIN hash file must exist"
    PIN_HASH_EMPTY = "PIN hash file must not be empty"


class StoreError(enum.Enum):
    MISSING = "missing"
    UNREADABLE = "unreadable"
    DECRYPT_FAILED = "decrypt_failed"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class SecretMaterial:
    pepper: bytes = field(repr=False)
    pin_hash: str = field(repr=False)


@dataclass(frozen=True)
class SecretMaterialResult:
    material: SecretMaterial | None = None
    error: MaterialError | None = None


@dataclass(frozen=True)
class StoreResult:
    entries: Mapping[str, str] | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_secret_material(settings: Settings) -> SecretMaterialResult:
    try:
        pepper = settings.pepper_file.read_bytes()
    except OSError:
        return SecretMaterialResult(error=MaterialError.PEPPER_MISSING)
    if not pepper:
        return SecretMaterialResult(error=MaterialError.PEPPER_EMPTY)
    try:
        pin_hash = settings.pin_hash_file.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return SecretMaterialResult(error=MaterialError.PIN_HASH_MISSING)
    if not pin_hash:
        return SecretMaterialResult(error=MaterialError.PIN_HASH_EMPTY)
    return SecretMaterialResult(material=SecretMaterial(pepper=pepper, pin_hash=pin_hash))


def load_secret_store(settings: Settings) -> StoreResult:
    """Decrypt the identifier to password-hash mapping for a single check.

    The returned mapping is read-only and is never written back anywhere.
    """
    if not settings.secrets_file.is_file() or not settings.keyring_file.is_file():
        return StoreResult(error=StoreError.MISSING)
    try:
        envelope = settings.secrets_file.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError):
        LOGGER.exception("Failed to read secret store at %s", settings.secrets_file)
        return StoreResult(error=StoreError.UNREADABLE)
    try:
        keyring = read_keyring(settings.keyring_file)
    except KeyRingError:
        LOGGER.exception("Failed to load key ring at %s", settings.keyring_file)
        return StoreResult(error=StoreError.UNREADABLE)
    try:
        entries = decrypt_store(envelope, keyring, settings.app_name)
    except PayloadError as exc:
        LOGGER.error("Secret store payload is malformed: %s", exc)
        return StoreResult(error=StoreError.MALFORMED)
    except EnvelopeError as exc:
        LOGGER.error("Secret store could not be decrypted: %s", exc)
        return StoreResult(error=StoreError.DECRYPT_FAILED)
    return StoreResult(entries=MappingProxyType(entries))


def write_secret_store(settings: Settings, entries: Mapping[str, str], keyring: KeyRing) -> None:
    envelope = encrypt_store(entries, keyring, settings.app_name)
    write_private_file(settings.secrets_file, envelope.encode("ascii"))
    LOGGER.info(
        "Wrote %d identifier(s) to %s with key v%d",
        len(entries),
        settings.secrets_file,
        keyring.active_key_id,
    )
