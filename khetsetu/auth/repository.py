"""Repository for auth users with MongoDB primary and JSON file fallback."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from khetsetu.auth.models import AuthUser

LOGGER = logging.getLogger(__name__)


class AuthRepository:
    """User storage keyed by ``user_id`` with email/phone/token lookups."""

    def __init__(self, runtime_dir: Path) -> None:
        self._fallback_dir = runtime_dir / "auth_store"
        self._fallback_dir.mkdir(parents=True, exist_ok=True)
        self._users_file = self._fallback_dir / "users.json"
        self._lock = Lock()
        self._mongo_users = None

        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "khetsetu").strip() or "khetsetu"
        if mongo_uri:
            try:
                client: MongoClient = MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
                client.admin.command("ping")
                users = client[mongo_db]["users"]
                users.create_index("email", unique=True)
                users.create_index("user_id", unique=True)
                self._mongo_users = users
            except PyMongoError:
                LOGGER.warning("MongoDB unavailable, using file store", exc_info=True)
                self._mongo_users = None

    def _read_rows(self) -> list[dict[str, Any]]:
        if not self._users_file.exists():
            return []
        try:
            payload = json.loads(self._users_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Ignoring unreadable user store %s", self._users_file)
            return []
        return payload if isinstance(payload, list) else []

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        tmp_path = self._users_file.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._users_file)

    def _find_one(self, field: str, value: str) -> AuthUser | None:
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({field: value}, {"_id": 0})
            return AuthUser.model_validate(doc) if doc else None
        with self._lock:
            rows = self._read_rows()
        for row in rows:
            if row.get(field) == value:
                return AuthUser.model_validate(row)
        return None

    def get_user_by_id(self, user_id: str) -> AuthUser | None:
        return self._find_one("user_id", user_id)

    def get_user_by_email(self, email: str) -> AuthUser | None:
        return self._find_one("email", email.strip().lower())

    def get_user_by_phone(self, phone: str) -> AuthUser | None:
        return self._find_one("phone", phone)

    def get_user_by_reset_token_hash(self, token_hash: str) -> AuthUser | None:
        if not token_hash:
            return None
        return self._find_one("reset_token_hash", token_hash)

    def save_user(self, user: AuthUser) -> None:
        """Create or replace the user record with the same ``user_id``."""
        doc = user.model_dump()
        if self._mongo_users is not None:
            self._mongo_users.replace_one({"user_id": user.user_id}, doc, upsert=True)
            return
        with self._lock:
            rows = [row for row in self._read_rows() if row.get("user_id") != user.user_id]
            rows.append(doc)
            self._write_rows(rows)
