"""Password and PIN hashing helpers for Password Trainer.

Every secret is peppered with HMAC-SHA256 before it reaches Argon2id, so a
stolen hash file is useless without the pepper kept in the secrets path.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError
from argon2.low_level import Type

from pwtrainer.settings import Settings


PEPPER_SIZE = 32


def build_hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(
        time_cost=settings.hash_time_cost,
        memory_cost=settings.hash_memory_cost,
        parallelism=settings.hash_parallelism,
        type=Type.ID,
    )


def generate_pepper() -> bytes:
    return secrets.token_bytes(PEPPER_SIZE)


def scrub(buffer: bytearray) -> None:
    for index in range(len(buffer)):
        buffer[index] = 0


def pepper_secret(pepper: bytes, secret: bytes | bytearray) -> bytes:
    return hmac.new(pepper, secret, hashlib.sha256).digest()


def hash_secret(hasher: PasswordHasher, secret: bytes | bytearray, pepper: bytes) -> str:
    return hasher.hash(pepper_secret(pepper, secret))


def verify_secret(
    hasher: PasswordHasher, stored_hash: str, secret: bytearray, pepper: bytes
) -> bool:
    """Check ``secret`` against ``stored_hash`` and zero the buffer afterwards.

    The buffer is scrubbed whatever the outcome, including when hashing
    raises.
    """
    try:
        return hasher.verify(stored_hash, pepper_secret(pepper, secret))
    except (VerificationError, InvalidHash):
        return False
    finally:
        scrub(secret)
