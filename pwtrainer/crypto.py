"""Envelope encryption for the identifier to password-hash store.

Format of the persisted envelope (ASCII text)::

    v1.<urlsafe base64 of [key_id 2B uint16 BE][nonce 12B][ciphertext + GCM tag 16B]>

The AES-256-GCM key is derived per key version with
``HKDF-SHA256(key material, info="<app_name>/secret-store/v<key_id>")`` and the
associated data binds the envelope to ``"<app_name>/secret-store"``, so an
envelope written for one installation does not open under another
application name.

Security Note:
    Never log plaintext, ciphertext or key material.
"""

from __future__ import annotations

import base64
import binascii
import os
import struct
from typing import Mapping

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from pwtrainer.keyring import KeyRing

ENVELOPE_PREFIX = "v1."
PURPOSE = "secret-store"
NONCE_SIZE = 12  # 96-bit nonce
KEY_ID_SIZE = 2  # uint16 big-endian
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256


class EnvelopeError(ValueError):
    """The envelope cannot be opened or does not hold a valid store."""


class PayloadError(EnvelopeError):
    """The envelope opened but its plaintext is not an identifier mapping."""


def derive_key(material: bytes, app_name: str, key_id: int) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=f"{app_name}/{PURPOSE}/v{key_id}".encode("utf-8"),
    )
    return hkdf.derive(material)


def _associated_data(app_name: str) -> bytes:
    return f"{app_name}/{PURPOSE}".encode("utf-8")


def canonical_json(entries: Mapping[str, str]) -> bytes:
    return orjson.dumps(dict(entries), option=orjson.OPT_SORT_KEYS)


def seal(plaintext: bytes, keyring: KeyRing, app_name: str) -> str:
    key_id = keyring.active_key_id
    cipher = AESGCM(derive_key(keyring.active_key, app_name, key_id))
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext, _associated_data(app_name))
    blob = struct.pack("!H", key_id) + nonce + ct
    return ENVELOPE_PREFIX + base64.urlsafe_b64encode(blob).decode("ascii")


def unseal(envelope: str, keyring: KeyRing, app_name: str) -> bytes:
    envelope = envelope.strip()
    if not envelope.startswith(ENVELOPE_PREFIX):
        raise EnvelopeError("Unknown envelope version")
    try:
        blob = base64.urlsafe_b64decode(envelope[len(ENVELOPE_PREFIX):].encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise EnvelopeError("Envelope is not valid base64") from exc
    _min = KEY_ID_SIZE + NONCE_SIZE + TAG_SIZE
    if len(blob) < _min:
        raise EnvelopeError(f"Envelope too short: {len(blob)} bytes (minimum {_min})")
    key_id = struct.unpack("!H", blob[:KEY_ID_SIZE])[0]
    material = keyring.get(key_id)
    if material is None:
        raise EnvelopeError(f"Key version {key_id} not found in key ring")
    cipher = AESGCM(derive_key(material, app_name, key_id))
    nonce = blob[KEY_ID_SIZE:KEY_ID_SIZE + NONCE_SIZE]
    try:
        return cipher.decrypt(nonce, blob[KEY_ID_SIZE + NONCE_SIZE:], _associated_data(app_name))
    except InvalidTag as exc:
        raise EnvelopeError("Envelope authentication failed") from exc


def encrypt_store(entries: Mapping[str, str], keyring: KeyRing, app_name: str) -> str:
    return seal(canonical_json(entries), keyring, app_name)


def decrypt_store(envelope: str, keyring: KeyRing, app_name: str) -> dict[str, str]:
    plaintext = unseal(envelope, keyring, app_name)
    try:
        parsed = orjson.loads(plaintext)
    except orjson.JSONDecodeError as exc:
        raise PayloadError("Store payload is not valid JSON") from exc
    if not isinstance(parsed, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in parsed.items()
    ):
        raise PayloadError("Store payload must map identifiers to hashes")
    return parsed
