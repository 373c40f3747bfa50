"""
Persistent stores for owner preferences, long-term memory and session state.

All four logical keys live in one SQLite key/value table. Every write is
committed before the call returns, so a tool result is only produced once
its side effect is durable.
"""

import json
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

import structlog
from pydantic import ValidationError

from mayra.core.models import AssistantMode, MemoryItem, Message, OwnerPreferences

logger = structlog.get_logger(__name__)

STORAGE_KEY_PREFS = "mayra_prefs"
STORAGE_KEY_MEMORY = "mayra_memory"
STORAGE_KEY_SESSION_MSGS = "mayra_session_msgs"
STORAGE_KEY_SESSION_MODE = "mayra_session_mode"


class KeyValueStore:
    """SQLite-backed string key/value store."""

    _CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _init_db(self) -> None:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            Path(db_dir).mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.execute(self._CREATE_TABLE_SQL)
                conn.commit()
            finally:
                conn.close()
        logger.debug("Key/value store initialized", db_path=self._db_path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
                return row[0] if row else None
            finally:
                conn.close()

    def set(self, key: str, value: str) -> None:
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                    (key, value),
                )
                conn.commit()
            finally:
                conn.close()

    def delete(self, *keys: str) -> None:
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])
                conn.commit()
            finally:
                conn.close()


class PersistentStores:
    """
    Typed access to the four persisted keys.

    Reads never raise for bad data: missing or corrupt values are logged and
    replaced with defaults, and list entries that fail validation are skipped
    one by one.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        # Held across whole load-modify-save cycles
        self._update_lock = threading.RLock()

    @classmethod
    def open(cls, db_path: str) -> "PersistentStores":
        return cls(KeyValueStore(db_path))

    def _load_json(self, key: str, default: Any) -> Any:
        raw = self._kv.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Corrupt persisted value, using default", record=key, error=str(e))
            return default

    def _load_list(self, key: str, model) -> list:
        data = self._load_json(key, [])
        if not isinstance(data, list):
            logger.warning("Persisted value is not a list, using default", record=key)
            return []
        items = []
        for index, entry in enumerate(data):
            try:
                items.append(model.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid persisted entry", record=key, index=index, error=str(e))
        return items

    # Owner preferences

    def load_prefs(self) -> OwnerPreferences:
        data = self._load_json(STORAGE_KEY_PREFS, None)
        if data is None:
            return OwnerPreferences()
        try:
            return OwnerPreferences.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid owner preferences, using defaults", error=str(e))
            return OwnerPreferences()

    def save_prefs(self, prefs: OwnerPreferences) -> None:
        with self._update_lock:
            self._kv.set(STORAGE_KEY_PREFS, prefs.model_dump_json())

    def update_prefs(self, change: Callable[[OwnerPreferences], OwnerPreferences]) -> OwnerPreferences:
        """Load, transform and save the preferences as one step; returns what was saved."""
        with self._update_lock:
            prefs = change(self.load_prefs())
            self.save_prefs(prefs)
            return prefs

    # Long-term memory

    def load_memories(self) -> List[MemoryItem]:
        return self._load_list(STORAGE_KEY_MEMORY, MemoryItem)

    def save_memories(self, memories: List[MemoryItem]) -> None:
        with self._update_lock:
            self._kv.set(STORAGE_KEY_MEMORY, json.dumps([m.model_dump() for m in memories]))

    def update_memories(self, change: Callable[[List[MemoryItem]], List[MemoryItem]]) -> List[MemoryItem]:
        """Load, transform and save the memory list as one step; returns what was saved."""
        with self._update_lock:
            memories = change(self.load_memories())
            self.save_memories(memories)
            return memories

    # Session transcript and mode

    def load_session_messages(self) -> List[Message]:
        return self._load_list(STORAGE_KEY_SESSION_MSGS, Message)

    def save_session_messages(self, messages: List[Message]) -> None:
        payload = [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in messages]
        self._kv.set(STORAGE_KEY_SESSION_MSGS, json.dumps(payload))

    def load_session_mode(self) -> AssistantMode:
        raw = self._kv.get(STORAGE_KEY_SESSION_MODE)
        if raw is None:
            return AssistantMode.DEFAULT
        mode = AssistantMode.parse(raw)
        if mode is None:
            logger.warning("Unknown persisted mode, using default", mode=raw)
            return AssistantMode.DEFAULT
        return mode

    def save_session_mode(self, mode: AssistantMode) -> None:
        self._kv.set(STORAGE_KEY_SESSION_MODE, mode.value)

    def clear_session(self) -> None:
        """Forget the ephemeral transcript and mode; memory and preferences stay."""
        self._kv.delete(STORAGE_KEY_SESSION_MSGS, STORAGE_KEY_SESSION_MODE)
