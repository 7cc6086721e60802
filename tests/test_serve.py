"""Startup refusal and entry point wiring."""

from __future__ import annotations

import pytest

from pwtrainer import serve, web
from pwtrainer.errors import StartupValidationError
from tests.helpers import build_settings, provision


def test_create_app_refuses_without_secret_files(tmp_path) -> None:
    with pytest.raises(StartupValidationError) as excinfo:
        web.create_app(build_settings(tmp_path))

    assert "Pepper file must exist" in excinfo.value.messages


def test_create_app_refuses_empty_pepper(tmp_path) -> None:
    configured = build_settings(tmp_path)
    provision(configured)
    configured.pepper_file.write_bytes(b"")

    with pytest.raises(StartupValidationError) as excinfo:
        web.create_app(configured)

    assert excinfo.value.messages == ["Pepper file must not be empty"]


def test_create_app_refuses_invalid_rate_limit(tmp_path) -> None:
    configured = build_settings(tmp_path, rate_limit_permit_limit=500)
    provision(configured)

    with pytest.raises(StartupValidationError):
        web.create_app(configured)


def test_serve_main_exits_when_configuration_is_invalid(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PWTRAINER_DATA_PATH", str(tmp_path / "missing"))
    monkeypatch.setenv("PWTRAINER_SECRETS_PATH", str(tmp_path / "missing"))

    def _fail_run(*args, **kwargs):
        raise AssertionError("uvicorn must not start")

    monkeypatch.setattr(serve.uvicorn, "run", _fail_run)

    assert serve.main([]) == 1


def test_serve_main_starts_uvicorn(monkeypatch, tmp_path) -> None:
    configured = build_settings(tmp_path)
    provision(configured)
    monkeypatch.setenv("PWTRAINER_DATA_PATH", str(configured.data_path))
    monkeypatch.setenv("PWTRAINER_SECRETS_PATH", str(configured.secrets_path))
    monkeypatch.setenv("PWTRAINER_HASH_TIME_COST", "1")
    monkeypatch.setenv("PWTRAINER_HASH_MEMORY_COST", "8")
    monkeypatch.setenv("PWTRAINER_HASH_PARALLELISM", "1")
    calls = []
    monkeypatch.setattr(serve.uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))

    assert serve.main(["--port", "9090"]) == 0
    assert calls[0]["port"] == 9090
    assert calls[0]["proxy_headers"] is True
    assert calls[0]["forwarded_allow_ips"] == "127.0.0.1"
