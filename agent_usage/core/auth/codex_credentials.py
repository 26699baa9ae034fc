from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_PROFILE_EMAIL_CLAIM = "https://api.openai.com/profile.email"
_PLAN_TYPE_CLAIM = "https://api.openai.com/auth.chatgpt_plan_type"
_AUTH_NAMESPACE_CLAIM = "https://api.openai.com/auth"


@dataclass(frozen=True, slots=True)
class CodexAuthFallback:
    email: str | None = None
    plan_type: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


def read_codex_auth(path: Path) -> CodexAuthFallback | None:
    """Read identity hints from the Codex ``auth.json`` file.

    Best effort: any problem with the file or its ID token yields ``None``.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        logger.debug("Codex auth file unreadable path=%s error=%s", path, exc)
        return None
    try:
        return parse_codex_auth_json(raw)
    except (ValueError, RecursionError) as exc:
        logger.debug("Codex auth file ignored path=%s error=%s", path, exc)
        return None


def parse_codex_auth_json(raw: bytes | str) -> CodexAuthFallback | None:
    data = json.loads(raw)
    if not isinstance(data, dict):
        return None
    tokens = data.get("tokens")
    if not isinstance(tokens, dict):
        return None
    id_token = tokens.get("id_token") or tokens.get("idToken")
    if not isinstance(id_token, str) or not id_token:
        return None

    claims = decode_jwt_payload(id_token)
    if claims is None:
        return None
    return CodexAuthFallback(
        email=_first_str(claims.get(_PROFILE_EMAIL_CLAIM), claims.get("email")),
        plan_type=_first_str(
            claims.get(_PLAN_TYPE_CLAIM),
            _nested_plan_type(claims.get(_AUTH_NAMESPACE_CLAIM)),
            claims.get("chatgpt_plan_type"),
        ),
        claims=claims,
    )


def decode_jwt_payload(token: str) -> dict[str, Any] | None:
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return None
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii"))
        claims = json.loads(decoded.decode("utf-8"))
    except (UnicodeError, binascii.Error, ValueError, RecursionError):
        return None
    return claims if isinstance(claims, dict) else None


def _nested_plan_type(value: object) -> object:
    if isinstance(value, dict):
        return value.get("chatgpt_plan_type")
    return None


def _first_str(*values: object) -> str | None:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None
