"""Security helpers for password hashing and bearer tokens."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from argon2 import PasswordHasher, exceptions as argon_exc

logger = logging.getLogger("practice.security")

TOKEN_ALGORITHM = "HS256"

# Argon2 hasher with reasonable defaults
ph = PasswordHasher()


def hash_password(plain_text: str) -> str:
    """Hash the provided password with Argon2."""
    if not plain_text:
        raise ValueError("Password must not be empty")
    return ph.hash(plain_text)


def verify_password(plain_text: str, hashed: str) -> bool:
    """Verify a password against an Argon2 hash."""
    if not plain_text or not hashed:
        return False

    try:
        return ph.verify(hashed, plain_text)
    except (argon_exc.VerificationError, argon_exc.InvalidHash):
        return False


def issue_token(claims: Mapping[str, Any], secret: str, ttl_days: int = 7) -> str:
    """Sign ``claims`` into an HS256 token that expires after ``ttl_days``."""
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + timedelta(days=ttl_days)
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


def verify_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or ``None`` when it is invalid or expired."""
    if not token:
        return None
    try:
        return jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None
