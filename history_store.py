# history_store.py
"""
Client-side chat history.

Past conversations are kept most-recent-first as a JSON list under one key of
a small JSON key-value file. Every save rewrites the whole list, so two
clients writing the same file race and the last writer wins.
"""
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from errors import StorageCorrupt
from models import ConversationRecord, Message, utcnow

logger = logging.getLogger("farmer_chat.history")

HISTORY_KEY = "farmer_chat_history"
MAX_RECORDS = 20
PREVIEW_CHARS = 50
ELLIPSIS = "..."
FALLBACK_PREVIEW = "Chat session"

_records = TypeAdapter(List[ConversationRecord])


def make_preview(messages: Sequence[Message]) -> str:
    first = next((m for m in messages if m.role == "user"), None)
    if first is None or not first.content:
        return FALLBACK_PREVIEW
    text = first.content
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS] + ELLIPSIS
    return text


class LocalHistoryStore:
    def __init__(self, path, key: str = HISTORY_KEY, max_records: int = MAX_RECORDS,
                 clock: Callable[[], datetime] = utcnow):
        self.path = Path(path).expanduser()
        self.key = key
        self.max_records = max_records
        self.clock = clock

    # --- key-value file ---

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageCorrupt(str(e)) from e
        if not isinstance(data, dict):
            raise StorageCorrupt(f"expected an object, got {type(data).__name__}")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read_or_empty(self) -> Dict[str, Any]:
        try:
            return self._read()
        except StorageCorrupt as e:
            logger.warning("Ignoring unreadable history file %s: %s", self.path, e)
            return {}

    # --- history ---

    def load_all(self) -> List[ConversationRecord]:
        data = self._read_or_empty()
        try:
            return _records.validate_python(data.get(self.key, []))
        except SchemaError as e:
            logger.warning("Ignoring malformed chat history in %s: %s", self.path, e)
            return []

    def load_one(self, index: int) -> Optional[ConversationRecord]:
        if index < 0:
            return None
        records = self.load_all()
        if index >= len(records):
            return None
        return records[index]

    def save_current(self, active_log: Sequence[Message]) -> Optional[ConversationRecord]:
        if not active_log:
            return None

        record = ConversationRecord(
            timestamp=self.clock(),
            preview=make_preview(active_log),
            messages=list(active_log),
        )
        records = self.load_all()
        records.insert(0, record)
        del records[self.max_records:]

        data = self._read_or_empty()
        data[self.key] = _records.dump_python(records, mode="json")
        self._write(data)
        return record

    def clear_all(self) -> None:
        data = self._read_or_empty()
        data.pop(self.key, None)
        self._write(data)

    def __len__(self) -> int:
        return len(self.load_all())
