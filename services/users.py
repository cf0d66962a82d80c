"""User management helpers for Practice Organizer."""

from __future__ import annotations

import re
import sqlite3
from typing import Any, Dict, Optional

from services.db import Database
from services.entities import USER_ROLES
from services.security import hash_password, verify_password

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

_PUBLIC_COLUMNS = "id, email, name, role, is_active, created_at, updated_at, last_login_at"


class UserExistsError(ValueError):
    """Raised when attempting to create a user with an email that already exists."""


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _public(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {key: row[key] for key in row.keys() if key != "password_hash"}


def create_user(db: Database, email: str, name: str, password: str, role: str) -> Dict[str, Any]:
    email_norm = normalize_email(email)
    name = (name or "").strip()
    if not email_norm or not name or not password or not role:
        raise ValueError("All fields are required")
    if not _EMAIL_RE.match(email_norm):
        raise ValueError("Invalid email format")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if role not in USER_ROLES:
        raise ValueError("Invalid role")
    password_hash = hash_password(password)

    try:
        with db.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO users(email, name, password_hash, role)
                VALUES(?, ?, ?, ?)
                """,
                (email_norm, name, password_hash, role),
            )
            row = conn.execute(
                f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE id = ?",
                (cur.lastrowid,),
            ).fetchone()
    except sqlite3.IntegrityError as exc:
        raise UserExistsError("User already exists") from exc

    return _public(row)


def get_user_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    email_norm = normalize_email(email)
    if not email_norm:
        return None
    with db.connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?",
            (email_norm,),
        ).fetchone()
    return _public(row)


def get_user_by_id(db: Database, user_id: int) -> Optional[Dict[str, Any]]:
    with db.connection() as conn:
        row = conn.execute(
            f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
    return _public(row)


def authenticate_user(db: Database, email: str, password: str) -> Optional[Dict[str, Any]]:
    email_norm = normalize_email(email)
    if not email_norm or not password:
        return None
    with db.connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?",
            (email_norm,),
        ).fetchone()
    if not row or not row["is_active"]:
        return None
    if not verify_password(password, row["password_hash"]):
        return None
    return _public(row)


def mark_user_login(db: Database, user_id: int) -> None:
    with db.transaction() as conn:
        conn.execute(
            "UPDATE users SET last_login_at = CURRENT_TIMESTAMP WHERE id = ?",
            (user_id,),
        )

