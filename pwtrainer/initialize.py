"""Interactive secret initialization for Password Trainer.

Runs offline, never inside the serving process. Produces the pepper (kept if
it already exists, since replacing it would invalidate every stored hash),
the PIN hash and the encrypted identifier store. The PIN hash and the store
are always rewritten in full.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Callable, Iterable

from argon2 import PasswordHasher

from pwtrainer.errors import InitializationError, StartupValidationError
from pwtrainer.files import write_private_file
from pwtrainer.keyring import KeyRingError, load_or_create_keyring
from pwtrainer.logging_config import configure_logging
from pwtrainer.security import build_hasher, generate_pepper, hash_secret, scrub
from pwtrainer.settings import Settings, ensure_valid, load_settings
from pwtrainer.store import write_secret_store

LOGGER = logging.getLogger(__name__)
PIN_MIN_LENGTH = 4
MAX_FIELD_LENGTH = 128
# Largest payload a 128-character base64 field on /check can carry.
MAX_PASSWORD_BYTES = 96

Prompt = Callable[[str], str]


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Password Trainer secret initialization")
    parser.add_argument(
        "--rotate-key",
        action="store_true",
        help="Add a new active key to the key ring before encrypting the store",
    )
    return parser.parse_args(list(argv))


def _require(value: str | None, message: str) -> str:
    if not value:
        raise InitializationError(message)
    return value


def _parse_count(raw_value: str | None) -> int:
    try:
        count = int((raw_value or "").strip())
    except ValueError:
        LOGGER.warning("Entry count %r is not a number; storing no identifiers.", raw_value)
        return 0
    return max(count, 0)


def load_or_create_pepper(settings: Settings) -> bytes:
    if settings.pepper_file.exists():
        pepper = settings.pepper_file.read_bytes()
        if not pepper:
            raise InitializationError(f"Pepper file {settings.pepper_file} is empty")
        LOGGER.info("Reusing existing pepper at %s", settings.pepper_file)
        return pepper
    pepper = generate_pepper()
    write_private_file(settings.pepper_file, pepper)
    LOGGER.info("Generated new pepper at %s", settings.pepper_file)
    return pepper


def _hash_utf8(hasher: PasswordHasher, value: str, pepper: bytes) -> str:
    buffer = bytearray(value.encode("utf-8"))
    try:
        return hash_secret(hasher, buffer, pepper)
    finally:
        scrub(buffer)


def run_initializer(
    settings: Settings,
    prompt: Prompt,
    secret_prompt: Prompt,
    *,
    rotate_key: bool = False,
    hasher: PasswordHasher | None = None,
) -> dict[str, str]:
    """Collect the PIN and identifier/password pairs and write every artifact.

    Returns the identifier to hash mapping that was encrypted into the store.
    """
    hasher = hasher or build_hasher(settings)

    pin = _require(secret_prompt("Enter new App-PIN: "), "App PIN must not be empty")
    if not PIN_MIN_LENGTH <= len(pin) <= MAX_FIELD_LENGTH:
        raise InitializationError(
            f"App PIN must be between {PIN_MIN_LENGTH} and {MAX_FIELD_LENGTH} characters"
        )

    pepper = load_or_create_pepper(settings)
    pin_hash = _hash_utf8(hasher, pin, pepper)
    write_private_file(settings.pin_hash_file, pin_hash.encode("utf-8"))
    LOGGER.info("Wrote PIN hash to %s", settings.pin_hash_file)

    entries: dict[str, str] = {}
    count = _parse_count(prompt("How many passwords? "))
    for index in range(count):
        identifier = _require(prompt(f"ID #{index + 1}: "), "ID must not be empty")
        if len(identifier) > MAX_FIELD_LENGTH:
            raise InitializationError(f"ID must not exceed {MAX_FIELD_LENGTH} characters")
        password = _require(
            secret_prompt(f"Password for '{identifier}': "), "Password must not be empty"
        )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InitializationError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")
        if identifier in entries:
            LOGGER.warning("ID %r entered twice; keeping the last password.", identifier)
        entries[identifier] = _hash_utf8(hasher, password, pepper)

    try:
        keyring = load_or_create_keyring(settings.keyring_file, rotate=rotate_key)
    except KeyRingError as exc:
        raise InitializationError(str(exc)) from exc
    write_secret_store(settings, entries, keyring)
    return entries


def _read_line(message: str) -> str:
    try:
        return input(message)
    except EOFError:
        return ""


def _read_secret(message: str) -> str:
    if not sys.stdin.isatty():
        return _read_line(message)
    return getpass.getpass(message)


def main(argv: Iterable[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        settings = ensure_valid(load_settings(), serving=False)
    except StartupValidationError as exc:
        for message in exc.messages:
            LOGGER.error("Invalid configuration: %s", message)
        return 1

    print("=== Password Trainer Init Mode ===")
    try:
        entries = run_initializer(settings, _read_line, _read_secret, rotate_key=args.rotate_key)
    except InitializationError as exc:
        LOGGER.error("Initialization aborted: %s", exc)
        return 1
    print(f"=== Init Complete ({len(entries)} ID(s) stored) ===")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
