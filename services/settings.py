"""Centralised configuration and secret management for Practice Organizer."""

from __future__ import annotations

import base64
import json
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


DEFAULTS: Dict[str, Any] = {
    "page_size_default": 10,
    "page_size_max": 100,
    "token_ttl_days": 7,
    "log_level": "INFO",
    "log_json": False,
    "firm_name": "Practice Organizer",
}

TOKEN_SECRET_KEY = "jwt_signing_key"


def _default_config_dir() -> Path:
    explicit = os.environ.get("PRACTICE_CONFIG_DIR")
    if explicit:
        return Path(explicit)
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "practice-organizer"
    return Path.home() / ".config" / "practice-organizer"


@dataclass
class SettingsPaths:
    config_dir: Path
    settings_file: Path
    secrets_file: Path


class SettingsManager:
    """Handles persistence of application settings and encrypted secrets.

    ``overrides`` shadow persisted values for the lifetime of this instance
    only; they are never written back to ``settings.json``.
    """

    SETTINGS_SCHEMA_VERSION = 1

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> None:
        root = Path(config_dir) if config_dir else _default_config_dir()
        self.paths = SettingsPaths(
            config_dir=root,
            settings_file=root / "settings.json",
            secrets_file=root / "secrets.enc",
        )
        self.paths.config_dir.mkdir(parents=True, exist_ok=True)

        self._settings: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = dict(overrides or {})
        self._load_settings()

        env_passphrase = os.environ.get("PRACTICE_SECRET_KEY")
        self.default_passphrase: Optional[str] = env_passphrase
        if not self.default_passphrase:
            self.default_passphrase = self._load_or_create_master_key()

        self._ensure_schema()

    # ------------------------------------------------------------------
    # Public API for plain settings
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        if key in self._settings:
            return self._settings[key]
        return DEFAULTS.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key, default)
        try:
            return int(raw)
        except (TypeError, ValueError):
            return default

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self._save_settings()

    def delete(self, key: str) -> None:
        if key in self._settings:
            del self._settings[key]
            self._save_settings()

    @property
    def database_path(self) -> Path:
        configured = self.get("database_path")
        if configured:
            return Path(configured)
        return self.paths.config_dir / "practice.db"

    # ------------------------------------------------------------------
    # Secret handling
    # ------------------------------------------------------------------
    def get_secret(self, key: str, default: Any = None, passphrase: Optional[str] = None) -> Any:
        payload = self._load_secrets(passphrase)
        if payload is None:
            return default
        return payload.get(key, default)

    def set_secret(self, key: str, value: Any, passphrase: Optional[str] = None) -> None:
        payload = self._load_secrets(passphrase) or {}
        payload[key] = value
        self._store_secrets(payload, passphrase)

    def delete_secret(self, key: str, passphrase: Optional[str] = None) -> None:
        payload = self._load_secrets(passphrase)
        if not payload or key not in payload:
            return
        payload.pop(key)
        self._store_secrets(payload, passphrase)

    def token_secret(self) -> str:
        """Return the key used to sign bearer tokens, creating it on first use."""
        env_secret = os.environ.get("PRACTICE_JWT_SECRET") or self._overrides.get(TOKEN_SECRET_KEY)
        if env_secret:
            return env_secret
        stored = self.get_secret(TOKEN_SECRET_KEY)
        if stored:
            return stored
        generated = secrets.token_urlsafe(48)
        self.set_secret(TOKEN_SECRET_KEY, generated)
        return generated

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_settings(self) -> None:
        try:
            with self.paths.settings_file.open("r", encoding="utf-8") as fh:
                self._settings = json.load(fh)
        except FileNotFoundError:
            self._settings = {}
        except json.JSONDecodeError:
            raise RuntimeError("settings.json is corrupted; please repair or delete it.")

    def _save_settings(self) -> None:
        self.paths.config_dir.mkdir(parents=True, exist_ok=True)
        with self.paths.settings_file.open("w", encoding="utf-8") as fh:
            json.dump(self._settings, fh, indent=2, sort_keys=True)

    def _ensure_schema(self) -> None:
        version = int(self._settings.get("schema_version", 0))
        if version < 1:
            self._settings.setdefault("schema_version", self.SETTINGS_SCHEMA_VERSION)
            self._settings.setdefault("secret_iterations", 390_000)
            if "secret_salt" not in self._settings:
                salt = os.urandom(16)
                self._settings["secret_salt"] = base64.urlsafe_b64encode(salt).decode("utf-8")
            self._save_settings()

    def _load_or_create_master_key(self) -> str:
        key_path = self.paths.config_dir / "master.key"
        try:
            key = key_path.read_text(encoding="utf-8").strip()
            if key:
                return key
        except FileNotFoundError:
            pass

        key = secrets.token_urlsafe(32)
        key_path.write_text(key, encoding="utf-8")
        try:
            key_path.chmod(0o600)
        except OSError:
            pass
        return key

    def _load_secrets(self, passphrase: Optional[str]) -> Optional[Dict[str, Any]]:
        if not self.paths.secrets_file.exists():
            return {}

        fernet = Fernet(self._require_key(passphrase))
        try:
            token = self.paths.secrets_file.read_bytes()
            decrypted = fernet.decrypt(token)
        except InvalidToken as exc:
            raise RuntimeError("Unable to decrypt secrets store. Invalid passphrase?") from exc

        try:
            return json.loads(decrypted.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError("Secrets store is corrupted.") from exc

    def _store_secrets(self, payload: Dict[str, Any], passphrase: Optional[str]) -> None:
        fernet = Fernet(self._require_key(passphrase))
        data = json.dumps(payload).encode("utf-8")
        self.paths.secrets_file.write_bytes(fernet.encrypt(data))
        try:
            self.paths.secrets_file.chmod(0o600)
        except OSError:
            pass

    def _require_key(self, passphrase: Optional[str]) -> bytes:
        key = self._derive_key(passphrase)
        if key is None:
            raise RuntimeError(
                "Secret passphrase required. Set PRACTICE_SECRET_KEY or provide passphrase explicitly."
            )
        return key

    def _derive_key(self, passphrase: Optional[str]) -> Optional[bytes]:
        actual = passphrase or self.default_passphrase
        if not actual:
            return None
        salt_b64 = self._settings.get("secret_salt")
        if not salt_b64:
            raise RuntimeError("Settings missing secret salt; try reinitialising configuration.")
        salt = base64.urlsafe_b64decode(salt_b64)
        iterations = int(self._settings.get("secret_iterations", 390_000))
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        key = kdf.derive(actual.encode("utf-8"))
        return base64.urlsafe_b64encode(key)
