"""Password hashing, JWT signing and one-time token helpers for the backend."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets
import time
import uuid
from typing import Any

import jwt

JWT_ALG = "HS256"
PBKDF2_ROUNDS = 120_000


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _unb64(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def hash_password(password: str) -> str:
    """Hash password using PBKDF2-HMAC-SHA256 with random salt."""
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return f"pbkdf2_sha256${PBKDF2_ROUNDS}${_b64(salt)}${_b64(derived)}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        algo, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        rounds = int(rounds_raw)
        salt = _unb64(salt_b64)
        expected = _unb64(digest_b64)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(derived, expected)


def issue_token(
    claims: dict[str, Any], *, secret_key: str, ttl_seconds: int, token_type: str
) -> str:
    """Sign ``claims`` as a JWT with type, issue time, expiry and a unique id."""
    now_ts = int(time.time())
    payload = {
        **claims,
        "type": token_type,
        "iat": now_ts,
        "exp": now_ts + ttl_seconds,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret_key, algorithm=JWT_ALG)


def decode_token(token: str, *, secret_key: str, token_type: str) -> dict[str, Any]:
    """Verify signature, expiry and type.

    Raises ``jwt.ExpiredSignatureError`` for expired tokens and
    ``jwt.InvalidTokenError`` for anything else that fails verification.
    """
    payload = jwt.decode(token, secret_key, algorithms=[JWT_ALG])
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError("Unexpected token type")
    return payload


def new_reset_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
