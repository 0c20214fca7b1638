from __future__ import annotations

import json
from pathlib import Path

import pytest

from khetsetu.client.token_store import (
    JsonFileTokenStorage,
    MemoryTokenStorage,
    TokenPair,
    TokenStore,
)


def test_token_store_set_tokens_replaces_pair_in_memory_and_file(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store = TokenStore(JsonFileTokenStorage(path))

    store.set_tokens("A1", "R1")
    store.set_tokens("A2", "R2")

    assert store.get_token() == "A2"
    assert store.refresh_token == "R2"
    assert json.loads(path.read_text(encoding="utf-8")) == {
        "authToken": "A2",
        "refreshToken": "R2",
    }
    assert not list(tmp_path.glob(".tokens-*"))


def test_token_store_hydrates_once_from_storage(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    JsonFileTokenStorage(path).write(TokenPair(access_token="A", refresh_token="R"))

    store = TokenStore(JsonFileTokenStorage(path))
    path.unlink()

    assert store.is_authenticated() is True
    assert store.get_token() == "A"


def test_token_store_clear_removes_both_keys(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store = TokenStore(JsonFileTokenStorage(path))
    store.set_tokens("A", "R")

    store.clear_tokens()

    assert store.get_token() is None
    assert store.refresh_token is None
    assert store.is_authenticated() is False
    assert not path.exists()


class _ReadOnlyStorage(MemoryTokenStorage):
    def clear(self) -> None:
        raise PermissionError("tokens.json is read-only")


def test_token_store_keeps_pair_when_storage_clear_fails() -> None:
    storage = _ReadOnlyStorage({"authToken": "A", "refreshToken": "R"})
    store = TokenStore(storage)

    with pytest.raises(PermissionError):
        store.clear_tokens()

    assert store.get_token() == "A"
    assert store.is_authenticated() is True
    assert storage.values == {"authToken": "A", "refreshToken": "R"}

def test_json_file_storage_ignores_corrupted_or_partial_file(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    path.write_text("{ broken", encoding="utf-8")
    assert JsonFileTokenStorage(path).read() is None

    path.write_text(json.dumps({"authToken": "A"}), encoding="utf-8")
    assert JsonFileTokenStorage(path).read() is None


def test_memory_storage_uses_fixed_keys() -> None:
    storage = MemoryTokenStorage()
    store = TokenStore(storage)

    store.set_tokens("A", "R")

    assert storage.values == {"authToken": "A", "refreshToken": "R"}
    store.clear_tokens()
    assert storage.values == {}
