"""Shared test helpers for Password Trainer."""

from __future__ import annotations

import base64
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterable

from fastapi.testclient import TestClient

from pwtrainer.initialize import run_initializer
from pwtrainer.settings import Settings
from pwtrainer.web import create_app

DEFAULT_PIN = "4242"
DEFAULT_ENTRIES = {"alice": "Sunshine1"}


def build_settings(tmp_path, **overrides) -> Settings:
    data_path = tmp_path / "data"
    secrets_path = tmp_path / "secrets"
    data_path.mkdir(parents=True, exist_ok=True)
    secrets_path.mkdir(parents=True, exist_ok=True)
    settings = Settings(
        data_path=data_path,
        secrets_path=secrets_path,
        hash_time_cost=1,
        hash_memory_cost=8,
        hash_parallelism=1,
    )
    return replace(settings, **overrides)


def scripted(answers: Iterable[str]):
    remaining = iter(answers)

    def _prompt(message: str) -> str:
        return next(remaining)

    return _prompt


def provision(
    settings: Settings,
    *,
    pin: str = DEFAULT_PIN,
    entries: dict[str, str] | None = None,
    rotate_key: bool = False,
) -> dict[str, str]:
    entries = DEFAULT_ENTRIES if entries is None else entries
    answers = [str(len(entries))]
    secret_answers = [pin]
    for identifier, password in entries.items():
        answers.append(identifier)
        secret_answers.append(password)
    return run_initializer(
        settings, scripted(answers), scripted(secret_answers), rotate_key=rotate_key
    )


def b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def check_body(pin: str = DEFAULT_PIN, identifier: str = "alice", password: str = "Sunshine1"):
    return {"pin": pin, "id": identifier, "password": b64(password)}


@contextmanager
def build_client(tmp_path, *, entries: dict[str, str] | None = None, **overrides):
    settings_obj = build_settings(tmp_path, **overrides)
    provision(settings_obj, entries=entries)
    with TestClient(create_app(settings_obj)) as client:
        yield client, settings_obj
