"""End-to-end coverage for POST /check."""

from __future__ import annotations

import pytest

from pwtrainer import security
from tests.helpers import b64, build_client, check_body

pytestmark = pytest.mark.api


def test_correct_credentials_are_accepted(tmp_path) -> None:
    with build_client(tmp_path) as (client, _):
        response = client.post("/check", json=check_body())

        assert response.status_code == 200
        assert response.content == b""


def test_end_to_end_scenario(tmp_path) -> None:
    with build_client(tmp_path) as (client, _):
        accepted = client.post("/check", json=check_body())
        wrong_password = client.post("/check", json=check_body(password="wrong"))
        unknown_id = client.post("/check", json=check_body(identifier="bob"))
        wrong_pin = client.post("/check", json=check_body(pin="0000"))
        empty_pin = client.post("/check", json=check_body(pin=""))

    assert accepted.status_code == 200
    for response in (wrong_password, unknown_id, wrong_pin):
        assert response.status_code == 400
        assert response.json() == "Invalid credentials"
    assert empty_pin.status_code == 400
    assert isinstance(empty_pin.json(), list)
    assert any(message.startswith("pin:") for message in empty_pin.json())


def test_failing_factors_are_indistinguishable(tmp_path) -> None:
    bodies = [
        check_body(pin="9999"),
        check_body(identifier="mallory"),
        check_body(password="nope"),
        check_body(pin="9999", identifier="mallory"),
        check_body(identifier="mallory", password="nope"),
        check_body(pin="9999", identifier="mallory", password="nope"),
        {"pin": "4242", "id": "alice", "password": "not base64!"},
    ]
    with build_client(tmp_path) as (client, _):
        responses = [client.post("/check", json=body) for body in bodies]

    assert {response.status_code for response in responses} == {400}
    assert {response.content for response in responses} == {responses[0].content}
    assert {response.headers["content-type"] for response in responses} == {
        responses[0].headers["content-type"]
    }


@pytest.mark.parametrize(
    "body",
    [
        {"pin": "123", "id": "alice", "password": b64("Sunshine1")},
        {"pin": "4242", "id": "", "password": b64("Sunshine1")},
        {"pin": "4242", "id": "alice", "password": ""},
        {"pin": "4242", "id": "a" * 129, "password": b64("Sunshine1")},
        {"pin": "4" * 129, "id": "alice", "password": b64("Sunshine1")},
        {"pin": "4242", "id": "alice"},
        {"pin": 4242, "id": "alice", "password": b64("Sunshine1")},
    ],
)
def test_malformed_requests_get_validation_messages(tmp_path, body) -> None:
    with build_client(tmp_path) as (client, _):
        response = client.post("/check", json=body)

    assert response.status_code == 400
    messages = response.json()
    assert isinstance(messages, list)
    assert messages
    assert "Invalid credentials" not in messages


def test_repeated_checks_return_same_outcome(tmp_path) -> None:
    with build_client(tmp_path) as (client, _):
        accepted = [client.post("/check", json=check_body()).status_code for _ in range(5)]
        rejected = [
            client.post("/check", json=check_body(password="wrong")).status_code
            for _ in range(5)
        ]

    assert accepted == [200] * 5
    assert rejected == [400] * 5


def test_rate_limit_rejects_after_permit_limit(tmp_path) -> None:
    with build_client(tmp_path, rate_limit_permit_limit=3) as (client, _):
        statuses = [client.post("/check", json=check_body()).status_code for _ in range(4)]

    assert statuses == [200, 200, 200, 429]


def test_rate_limit_ignores_forwarded_for_from_untrusted_peer(tmp_path) -> None:
    with build_client(tmp_path, rate_limit_permit_limit=2) as (client, _):
        statuses = [
            client.post(
                "/check",
                json=check_body(pin="0000"),
                headers={"x-forwarded-for": f"10.0.0.{index}"},
            ).status_code
            for index in range(20)
        ]

    assert statuses[:2] == [400, 400]
    assert statuses[2:] == [429] * 18


def test_rate_limit_applies_only_to_check(tmp_path) -> None:
    with build_client(tmp_path, rate_limit_permit_limit=1) as (client, _):
        client.post("/check", json=check_body())
        blocked = client.post("/check", json=check_body())
        health = client.get("/healthz")

    assert blocked.status_code == 429
    assert health.status_code == 200


def test_corrupted_store_returns_server_error(tmp_path) -> None:
    with build_client(tmp_path) as (client, settings_obj):
        settings_obj.secrets_file.write_text("v1.AAAAgarbage", encoding="ascii")
        response = client.post("/check", json=check_body())
        wrong_pin = client.post("/check", json=check_body(pin="0000"))

    assert response.status_code == 500
    assert response.json() == "Server error"
    assert "Traceback" not in response.text
    assert wrong_pin.status_code == 400


def test_missing_keyring_at_request_time_returns_server_error(tmp_path) -> None:
    with build_client(tmp_path) as (client, settings_obj):
        settings_obj.keyring_file.unlink()
        response = client.post("/check", json=check_body())

    assert response.status_code == 500
    assert response.json() == "Server error"


def test_check_does_not_modify_secret_files(tmp_path) -> None:
    with build_client(tmp_path) as (client, settings_obj):
        files = [
            settings_obj.pepper_file,
            settings_obj.pin_hash_file,
            settings_obj.secrets_file,
            settings_obj.keyring_file,
        ]
        before = {path: path.read_bytes() for path in files}
        client.post("/check", json=check_body())
        client.post("/check", json=check_body(password="wrong"))

    assert {path: path.read_bytes() for path in files} == before


def test_pin_and_password_buffers_are_scrubbed(tmp_path, monkeypatch) -> None:
    captured: list[bytearray] = []
    real_verify = security.verify_secret

    def _recording_verify(hasher, stored_hash, secret, pepper):
        captured.append(secret)
        return real_verify(hasher, stored_hash, secret, pepper)

    monkeypatch.setattr(security, "verify_secret", _recording_verify)
    with build_client(tmp_path) as (client, _):
        client.post("/check", json=check_body())
        client.post("/check", json=check_body(password="wrong"))
        client.post("/check", json=check_body(pin="0000"))

    assert len(captured) == 6
    for buffer in captured:
        assert buffer
        assert not any(buffer)


def test_healthz_reports_healthy(tmp_path) -> None:
    with build_client(tmp_path) as (client, _):
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.text == "Healthy"


def test_path_base_serves_routes_under_prefix(tmp_path) -> None:
    with build_client(tmp_path, path_base="/trainer") as (client, _):
        prefixed = client.post("/trainer/check", json=check_body())
        health = client.get("/trainer/healthz")
        root = client.get("/healthz")

    assert prefixed.status_code == 200
    assert health.text == "Healthy"
    assert root.status_code == 200
