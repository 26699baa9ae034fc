from __future__ import annotations

import base64
import json

import pytest

from agent_usage.core.auth.codex_credentials import decode_jwt_payload, parse_codex_auth_json, read_codex_auth

pytestmark = pytest.mark.unit


def _jwt(claims: dict) -> str:
    def _segment(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).rstrip(b"=").decode("ascii")

    return f"{_segment({'alg': 'none'})}.{_segment(claims)}.signature"


def _write_auth(tmp_path, payload) -> object:
    path = tmp_path / "auth.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_read_codex_auth_prefers_namespaced_claims(tmp_path):
    token = _jwt(
        {
            "email": "bare@example.com",
            "chatgpt_plan_type": "free",
            "https://api.openai.com/profile.email": "profile@example.com",
            "https://api.openai.com/auth.chatgpt_plan_type": "pro",
        }
    )
    path = _write_auth(tmp_path, {"tokens": {"id_token": token}})

    fallback = read_codex_auth(path)

    assert fallback is not None
    assert fallback.email == "profile@example.com"
    assert fallback.plan_type == "pro"
    assert fallback.claims["email"] == "bare@example.com"


def test_read_codex_auth_falls_back_to_bare_claims(tmp_path):
    token = _jwt({"email": "bare@example.com", "chatgpt_plan_type": "plus"})
    path = _write_auth(tmp_path, {"tokens": {"idToken": token}})

    fallback = read_codex_auth(path)

    assert fallback is not None
    assert fallback.email == "bare@example.com"
    assert fallback.plan_type == "plus"


def test_plan_type_read_from_auth_namespace_object():
    token = _jwt({"https://api.openai.com/auth": {"chatgpt_plan_type": "team"}})

    fallback = parse_codex_auth_json(json.dumps({"tokens": {"id_token": token}}))

    assert fallback is not None
    assert fallback.plan_type == "team"
    assert fallback.email is None


@pytest.mark.parametrize("value", ["a", "ab", "abc", "abcd", "??>>~~"])
def test_decode_jwt_payload_restores_padding(value):
    claims = {"sub": value}

    assert decode_jwt_payload(_jwt(claims)) == claims


@pytest.mark.parametrize(
    "token",
    ["", "no-dots", "header..sig", "header.!!!.sig", "header.bm90IGpzb24.sig", "header.WzFd.sig"],
)
def test_decode_jwt_payload_rejects_malformed_tokens(token):
    assert decode_jwt_payload(token) is None


def test_read_codex_auth_missing_file_returns_none(tmp_path):
    assert read_codex_auth(tmp_path / "missing.json") is None


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[]",
        json.dumps({"tokens": "nope"}),
        json.dumps({"tokens": {}}),
        json.dumps({"tokens": {"id_token": "a.b"}}),
    ],
)
def test_read_codex_auth_malformed_content_returns_none(tmp_path, raw):
    path = tmp_path / "auth.json"
    path.write_text(raw, encoding="utf-8")

    assert read_codex_auth(path) is None


def test_read_codex_auth_deeply_nested_file_returns_none(tmp_path):
    path = tmp_path / "auth.json"
    path.write_text("[" * 200000, encoding="utf-8")

    assert read_codex_auth(path) is None


def test_decode_jwt_payload_deeply_nested_claims_returns_none():
    segment = base64.urlsafe_b64encode(b"[" * 200000).rstrip(b"=").decode("ascii")

    assert decode_jwt_payload(f"header.{segment}.sig") is None
