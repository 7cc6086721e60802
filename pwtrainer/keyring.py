"""Key ring persistence for the secret-store envelope.

The key ring lives next to the encrypted store as ``keyring.json``::

    {
      "version": 1,
      "active_key_id": 2,
      "keys": [
        {"id": 1, "created_at": "2024-01-01T00:00:00+00:00", "material": "<base64>"},
        {"id": 2, "created_at": "2024-06-01T00:00:00+00:00", "material": "<base64>"}
      ]
    }

Each ``material`` decodes to exactly 32 random bytes. Keys are never pruned
automatically: rotation appends a new key and marks it active, while older
keys stay available to decrypt envelopes written before the rotation.

Security Note:
    Never log key material. Only log key IDs.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import orjson

from pwtrainer.files import write_private_file

LOGGER = logging.getLogger(__name__)

KEYRING_FORMAT_VERSION = 1
KEY_MATERIAL_SIZE = 32
MAX_KEY_ID = 0xFFFF


class KeyRingError(ValueError):
    """The key ring file is missing, unreadable or malformed."""


@dataclass(frozen=True)
class KeyRingEntry:
    key_id: int
    created_at: str
    material: bytes


@dataclass(frozen=True)
class KeyRing:
    active_key_id: int
    entries: tuple[KeyRingEntry, ...]

    def get(self, key_id: int) -> bytes | None:
        for entry in self.entries:
            if entry.key_id == key_id:
                return entry.material
        return None

    @property
    def active_key(self) -> bytes:
        material = self.get(self.active_key_id)
        if material is None:
            raise KeyRingError(f"Active key {self.active_key_id} is not in the key ring")
        return material


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _new_entry(key_id: int) -> KeyRingEntry:
    return KeyRingEntry(
        key_id=key_id,
        created_at=_now_iso(),
        material=secrets.token_bytes(KEY_MATERIAL_SIZE),
    )


def new_keyring() -> KeyRing:
    return KeyRing(active_key_id=1, entries=(_new_entry(1),))


def rotate_key(keyring: KeyRing) -> KeyRing:
    next_id = max(entry.key_id for entry in keyring.entries) + 1
    if next_id > MAX_KEY_ID:
        raise KeyRingError("Key ring has no key IDs left")
    LOGGER.info("Rotating secret-store key from v%d to v%d", keyring.active_key_id, next_id)
    return KeyRing(active_key_id=next_id, entries=keyring.entries + (_new_entry(next_id),))


def serialize_keyring(keyring: KeyRing) -> bytes:
    return orjson.dumps(
        {
            "version": KEYRING_FORMAT_VERSION,
            "active_key_id": keyring.active_key_id,
            "keys": [
                {
                    "id": entry.key_id,
                    "created_at": entry.created_at,
                    "material": base64.b64encode(entry.material).decode("ascii"),
                }
                for entry in keyring.entries
            ],
        },
        option=orjson.OPT_INDENT_2,
    )


def parse_keyring(raw: bytes) -> KeyRing:
    try:
        document = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise KeyRingError("Key ring is not valid JSON") from exc
    if not isinstance(document, dict) or document.get("version") != KEYRING_FORMAT_VERSION:
        raise KeyRingError("Unsupported key ring format")
    raw_keys = document.get("keys")
    active_key_id = document.get("active_key_id")
    if not isinstance(raw_keys, list) or not isinstance(active_key_id, int):
        raise KeyRingError("Key ring is missing keys or active_key_id")

    entries: list[KeyRingEntry] = []
    for raw_key in raw_keys:
        if not isinstance(raw_key, dict):
            raise KeyRingError("Key ring entry must be an object")
        key_id = raw_key.get("id")
        material_b64 = raw_key.get("material")
        if not isinstance(key_id, int) or not 0 < key_id <= MAX_KEY_ID:
            raise KeyRingError("Key ring entry has an invalid id")
        if not isinstance(material_b64, str):
            raise KeyRingError(f"Key v{key_id} has no material")
        try:
            material = base64.b64decode(material_b64, validate=True)
        except binascii.Error as exc:
            raise KeyRingError(f"Key v{key_id} material is not base64") from exc
        if len(material) != KEY_MATERIAL_SIZE:
            raise KeyRingError(
                f"Key v{key_id} must decode to exactly {KEY_MATERIAL_SIZE} bytes, "
                f"got {len(material)}"
            )
        entries.append(
            KeyRingEntry(
                key_id=key_id,
                created_at=str(raw_key.get("created_at", "")),
                material=material,
            )
        )

    keyring = KeyRing(active_key_id=active_key_id, entries=tuple(entries))
    if keyring.get(active_key_id) is None:
        raise KeyRingError(f"Active key {active_key_id} is not in the key ring")
    return keyring


def read_keyring(path: Path) -> KeyRing:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise KeyRingError(f"Key ring at {path} cannot be read") from exc
    keyring = parse_keyring(raw)
    LOGGER.debug(
        "Loaded %d key version(s), active v%d", len(keyring.entries), keyring.active_key_id
    )
    return keyring


def write_keyring(path: Path, keyring: KeyRing) -> None:
    write_private_file(path, serialize_keyring(keyring))


def load_or_create_keyring(path: Path, *, rotate: bool = False) -> KeyRing:
    if path.exists():
        keyring = read_keyring(path)
        if not rotate:
            return keyring
        keyring = rotate_key(keyring)
    else:
        LOGGER.info("Creating new key ring at %s", path)
        keyring = new_keyring()
    write_keyring(path, keyring)
    return keyring
