"""Configuration helpers for Password Trainer."""

from __future__ import annotations

import ipaddress
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from pwtrainer.errors import StartupValidationError


ENV_PREFIX = "PWTRAINER_"
DEFAULT_APP_NAME = "PasswordTrainer"
DEFAULT_RATE_LIMIT_PERMIT_LIMIT = 15
DEFAULT_RATE_LIMIT_WINDOW_MINUTES = 5
DEFAULT_CHECK_TIMEOUT_SECONDS = 30
DEFAULT_HASH_TIME_COST = 3
DEFAULT_HASH_MEMORY_COST = 65536
DEFAULT_HASH_PARALLELISM = 4
DEFAULT_FORWARDED_ALLOW_IPS = "127.0.0.1"

PEPPER_FILENAME = "pepper_secret"
PIN_HASH_FILENAME = "app_pin_hash"
SECRETS_FILENAME = "secrets.json"
KEYRING_FILENAME = "keyring.json"

PATH_BASE_PATTERN = re.compile(r"^/[a-zA-Z0-9\-/]*$")

_INT_FIELDS = {
    "rate_limit_permit_limit": ("RATE_LIMIT_PERMIT_LIMIT", DEFAULT_RATE_LIMIT_PERMIT_LIMIT),
    "rate_limit_window_minutes": ("RATE_LIMIT_WINDOW_MINUTES", DEFAULT_RATE_LIMIT_WINDOW_MINUTES),
    "check_timeout_seconds": ("CHECK_TIMEOUT_SECONDS", DEFAULT_CHECK_TIMEOUT_SECONDS),
    "hash_time_cost": ("HASH_TIME_COST", DEFAULT_HASH_TIME_COST),
    "hash_memory_cost": ("HASH_MEMORY_COST", DEFAULT_HASH_MEMORY_COST),
    "hash_parallelism": ("HASH_PARALLELISM", DEFAULT_HASH_PARALLELISM),
}


@dataclass(frozen=True)
class Settings:
    data_path: Path
    secrets_path: Path
    rate_limit_permit_limit: int = DEFAULT_RATE_LIMIT_PERMIT_LIMIT
    rate_limit_window_minutes: int = DEFAULT_RATE_LIMIT_WINDOW_MINUTES
    path_base: str | None = None
    app_name: str = DEFAULT_APP_NAME
    check_timeout_seconds: int = DEFAULT_CHECK_TIMEOUT_SECONDS
    hash_time_cost: int = DEFAULT_HASH_TIME_COST
    hash_memory_cost: int = DEFAULT_HASH_MEMORY_COST
    hash_parallelism: int = DEFAULT_HASH_PARALLELISM
    forwarded_allow_ips: str = DEFAULT_FORWARDED_ALLOW_IPS

    @property
    def pepper_file(self) -> Path:
        return self.secrets_path / PEPPER_FILENAME

    @property
    def pin_hash_file(self) -> Path:
        return self.secrets_path / PIN_HASH_FILENAME

    @property
    def secrets_file(self) -> Path:
        return self.data_path / SECRETS_FILENAME

    @property
    def keyring_file(self) -> Path:
        return self.data_path / KEYRING_FILENAME


def _parse_int(raw_value: str, name: str, errors: list[str]) -> int | None:
    try:
        return int(raw_value.strip())
    except ValueError:
        errors.append(f"{name} must be an integer")
        return None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build the process settings from ``PWTRAINER_*`` environment variables.

    Raises ``StartupValidationError`` when a value cannot be parsed at all;
    range and filesystem checks are left to :func:`validate_settings`.
    """
    env = os.environ if environ is None else environ
    errors: list[str] = []

    data_path = env.get(f"{ENV_PREFIX}DATA_PATH", "").strip()
    secrets_path = env.get(f"{ENV_PREFIX}SECRETS_PATH", "").strip()
    if not data_path:
        errors.append("DataPath is required")
    if not secrets_path:
        errors.append("SecretsPath is required")

    numbers: dict[str, int] = {}
    for field_name, (suffix, default) in _INT_FIELDS.items():
        raw_value = env.get(f"{ENV_PREFIX}{suffix}")
        if raw_value is None or not raw_value.strip():
            numbers[field_name] = default
            continue
        parsed = _parse_int(raw_value, f"{ENV_PREFIX}{suffix}", errors)
        if parsed is not None:
            numbers[field_name] = parsed

    if errors:
        raise StartupValidationError(errors)

    path_base = env.get(f"{ENV_PREFIX}PATH_BASE", "").strip() or None
    app_name = env.get(f"{ENV_PREFIX}APP_NAME", "").strip() or DEFAULT_APP_NAME
    forwarded_allow_ips = (
        env.get(f"{ENV_PREFIX}FORWARDED_ALLOW_IPS", "").strip() or DEFAULT_FORWARDED_ALLOW_IPS
    )
    return Settings(
        data_path=Path(data_path),
        secrets_path=Path(secrets_path),
        path_base=path_base,
        app_name=app_name,
        forwarded_allow_ips=forwarded_allow_ips,
        **numbers,
    )


def _valid_proxy_list(value: str) -> bool:
    entries = [entry.strip() for entry in value.split(",")]
    if not all(entries):
        return False
    try:
        for entry in entries:
            ipaddress.ip_network(entry, strict=False)
    except ValueError:
        return False
    return True


def validate_settings(settings: Settings, *, serving: bool) -> list[str]:
    errors: list[str] = []
    if not settings.data_path.is_dir():
        errors.append("DataPath must exist")
    if not settings.secrets_path.is_dir():
        errors.append("SecretsPath must exist")
    if not 1 <= settings.rate_limit_permit_limit <= 100:
        errors.append("RateLimitingPermitLimit must be between 1 and 100")
    if not 1 <= settings.rate_limit_window_minutes <= 60:
        errors.append("RateLimitingWindowMinutes must be between 1 and 60")
    if settings.path_base is not None and not PATH_BASE_PATTERN.match(settings.path_base):
        errors.append("PathBase must start with '/' and contain only letters, digits, '-' and '/'")
    if not 1 <= settings.check_timeout_seconds <= 300:
        errors.append("CheckTimeoutSeconds must be between 1 and 300")
    if settings.hash_time_cost < 1:
        errors.append("HashTimeCost must be at least 1")
    if not 1 <= settings.hash_parallelism <= 64:
        errors.append("HashParallelism must be between 1 and 64")
    if settings.hash_memory_cost < 8 * settings.hash_parallelism:
        errors.append("HashMemoryCost must be at least 8 KiB per lane")
    if not _valid_proxy_list(settings.forwarded_allow_ips):
        errors.append("ForwardedAllowIps must be a comma-separated list of IP addresses or networks")
    if serving:
        if not settings.pepper_file.is_file():
            errors.append("Pepper file must exist")
        if not settings.pin_hash_file.is_file():
            errors.append("PIN hash file must exist")
        if not settings.secrets_file.is_file():
            errors.append("Secrets file must exist")
        if not settings.keyring_file.is_file():
            errors.append("Key ring file must exist")
    return errors


def ensure_valid(settings: Settings, *, serving: bool) -> Settings:
    errors = validate_settings(settings, serving=serving)
    if errors:
        raise StartupValidationError(errors)
    return settings
