from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar

from .models import GUEST_USER, Identity

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.@-]")


def namespace_for(user: Optional[Identity]) -> str:
    return user.id if user else GUEST_USER


def progress_key(user: Optional[Identity]) -> str:
    return f"progress_{namespace_for(user)}"


def annotations_key(user: Optional[Identity]) -> str:
    return f"annotations_{namespace_for(user)}"


@dataclass
class StatePaths:
    root: Path

    def state_dir(self) -> Path:
        return self.root / "state"

    def key_path(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key)
        return self.state_dir() / f"{safe}.json"


class KeyValueStore:
    """
    Raw string key-value backend. Implementations may raise on I/O problems;
    `LocalPersistence` is responsible for absorbing those errors.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, raw: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, raw: str) -> None:
        self.items[key] = raw


class FileKeyValueStore(KeyValueStore):
    """
    Keeps one JSON document per key under `<root>/state/`.
    """

    def __init__(self, paths: StatePaths):
        self.paths = paths

    def get_item(self, key: str) -> Optional[str]:
        path = self.paths.key_path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, raw: str) -> None:
        path = self.paths.key_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(raw, encoding="utf-8")


class LocalPersistence:
    """
    JSON load/save on top of a key-value store. Both operations are total:
    `load` falls back on any problem and `save` drops failed writes.
    """

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store

    @property
    def available(self) -> bool:
        return self.store is not None

    def load(self, key: str, fallback: T) -> T:
        if self.store is None:
            return fallback
        try:
            raw = self.store.get_item(key)
        except Exception:  # noqa: BLE001
            logger.debug("Local state read failed for %s", key, exc_info=True)
            return fallback
        if not raw:
            return fallback
        try:
            value: Any = json.loads(raw)
        except ValueError:
            logger.debug("Discarding malformed local state under %s", key)
            return fallback
        if fallback is not None and not isinstance(value, type(fallback)):
            logger.debug("Local state under %s has unexpected shape %s", key, type(value).__name__)
            return fallback
        return value

    def save(self, key: str, value: Any) -> None:
        if self.store is None:
            return
        try:
            self.store.set_item(key, json.dumps(value, ensure_ascii=False))
        except Exception:  # noqa: BLE001
            logger.debug("Local state write failed for %s", key, exc_info=True)
