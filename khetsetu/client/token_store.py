"""Access/refresh token pair ownership and durable persistence."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from threading import Lock

LOGGER = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "authToken"
REFRESH_TOKEN_KEY = "refreshToken"


@dataclass(frozen=True)
class TokenPair:
    """Access token and the refresh token issued with it."""

    access_token: str
    refresh_token: str


class MemoryTokenStorage:
    """Process-local key-value storage, mainly for tests and one-shot scripts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def read(self) -> TokenPair | None:
        access = self.values.get(ACCESS_TOKEN_KEY)
        refresh = self.values.get(REFRESH_TOKEN_KEY)
        if not access or not refresh:
            return None
        return TokenPair(access_token=access, refresh_token=refresh)

    def write(self, pair: TokenPair) -> None:
        self.values = {
            ACCESS_TOKEN_KEY: pair.access_token,
            REFRESH_TOKEN_KEY: pair.refresh_token,
        }

    def clear(self) -> None:
        self.values = {}


class JsonFileTokenStorage:
    """Token pair stored as one JSON document, replaced by atomic rename."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> TokenPair | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Ignoring unreadable token file %s", self._path)
            return None
        if not isinstance(payload, dict):
            return None
        access = str(payload.get(ACCESS_TOKEN_KEY) or "")
        refresh = str(payload.get(REFRESH_TOKEN_KEY) or "")
        if not access or not refresh:
            return None
        return TokenPair(access_token=access, refresh_token=refresh)

    def write(self, pair: TokenPair) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            ACCESS_TOKEN_KEY: pair.access_token,
            REFRESH_TOKEN_KEY: pair.refresh_token,
        }
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self._path.parent), prefix=".tokens-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class TokenStore:
    """Single owner of the token pair held by a client.

    The pair is read from storage once, at construction. Afterwards reads are
    served from memory and every write goes to storage and memory together.
    """

    def __init__(self, storage: MemoryTokenStorage | JsonFileTokenStorage) -> None:
        self._storage = storage
        self._lock = Lock()
        self._pair: TokenPair | None = storage.read()

    @property
    def access_token(self) -> str | None:
        pair = self._pair
        return pair.access_token if pair else None

    @property
    def refresh_token(self) -> str | None:
        pair = self._pair
        return pair.refresh_token if pair else None

    def get_token(self) -> str | None:
        return self.access_token

    def is_authenticated(self) -> bool:
        return self._pair is not None

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        pair = TokenPair(access_token=access_token, refresh_token=refresh_token)
        with self._lock:
            self._storage.write(pair)
            self._pair = pair

    def clear_tokens(self) -> None:
        with self._lock:
            self._storage.clear()
            self._pair = None
