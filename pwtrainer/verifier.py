"""Credential verification for ``POST /check``.

A check walks PIN -> store -> identifier -> password and ends in one of three
outcomes. Every authentication failure collapses into the same
``INVALID_CREDENTIALS`` outcome so a caller cannot tell which factor was
wrong; only operational faults are reported differently.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import enum
import logging
import secrets
from typing import Any, Callable, TypeVar

from argon2 import PasswordHasher
from pydantic import BaseModel, ConfigDict, Field

from pwtrainer import security
from pwtrainer.settings import Settings
from pwtrainer.store import SecretMaterial, StoreResult, load_secret_store

LOGGER = logging.getLogger(__name__)
MAX_FIELD_LENGTH = 128

T = TypeVar("T")


class CheckRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    pin: str = Field(min_length=4, max_length=MAX_FIELD_LENGTH, repr=False)
    id: str = Field(min_length=1, max_length=MAX_FIELD_LENGTH)
    password: str = Field(min_length=1, max_length=MAX_FIELD_LENGTH, repr=False)


class CheckOutcome(enum.Enum):
    ACCEPTED = "accepted"
    INVALID_CREDENTIALS = "invalid_credentials"
    SERVER_ERROR = "server_error"


def decode_password(value: str) -> bytearray | None:
    try:
        return bytearray(base64.b64decode(value, validate=True))
    except (binascii.Error, ValueError):
        return None


class CredentialVerifier:
    """Verify check requests against the secrets loaded at startup.

    Hashing and file reads run in worker threads under one deadline per
    check. Buffers holding the PIN or password bytes are scrubbed inside the
    worker, so an aborted check still leaves them zeroed.
    """

    def __init__(
        self,
        settings: Settings,
        material: SecretMaterial,
        hasher: PasswordHasher | None = None,
        store_loader: Callable[[Settings], StoreResult] = load_secret_store,
    ) -> None:
        self.settings = settings
        self._material = material
        self._hasher = hasher or security.build_hasher(settings)
        self._store_loader = store_loader
        # Verified instead of a real hash when the PIN, identifier or password
        # encoding is bad, so every rejection costs the same.
        self._decoy_hash = security.hash_secret(
            self._hasher, secrets.token_bytes(16), material.pepper
        )

    def _verify(self, stored_hash: str, buffer: bytearray) -> bool:
        return security.verify_secret(self._hasher, stored_hash, buffer, self._material.pepper)

    async def _step(self, deadline: float | None, func: Callable[..., T], *args: Any) -> T:
        if deadline is None:
            return await asyncio.to_thread(func, *args)
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise asyncio.TimeoutError
        return await asyncio.wait_for(asyncio.to_thread(func, *args), remaining)

    async def _check_password(
        self, deadline: float | None, expected_hash: str | None, password: str
    ) -> bool:
        password_buffer = decode_password(password)
        known = expected_hash is not None and password_buffer is not None
        if password_buffer is None:
            password_buffer = bytearray(password.encode("utf-8"))
        try:
            password_valid = await self._step(
                deadline,
                self._verify,
                expected_hash if known else self._decoy_hash,
                password_buffer,
            )
        finally:
            security.scrub(password_buffer)
        return known and password_valid

    async def check(self, request: CheckRequest, *, timeout: float | None = None) -> CheckOutcome:
        """Run one verification; raises ``asyncio.TimeoutError`` past ``timeout``."""
        deadline = None
        if timeout is not None:
            deadline = asyncio.get_running_loop().time() + timeout

        pin_buffer = bytearray(request.pin.encode("utf-8"))
        try:
            pin_valid = await self._step(deadline, self._verify, self._material.pin_hash, pin_buffer)
        finally:
            security.scrub(pin_buffer)
        if not pin_valid:
            # A wrong PIN still pays for a password verification.
            await self._check_password(deadline, None, request.password)
            LOGGER.debug("Check rejected at PIN verification")
            return CheckOutcome.INVALID_CREDENTIALS

        result = await self._step(deadline, self._store_loader, self.settings)
        if not result.ok or result.entries is None:
            LOGGER.warning("Check failed: secret store unavailable (%s)", result.error)
            return CheckOutcome.SERVER_ERROR

        if await self._check_password(deadline, result.entries.get(request.id), request.password):
            return CheckOutcome.ACCEPTED
        LOGGER.debug("Check rejected at identifier or password verification")
        return CheckOutcome.INVALID_CREDENTIALS
