# conversation_store.py
"""
In-memory conversation logs keyed by session id.

Each session holds an ordered, append-only list of messages capped at
``max_messages`` (oldest dropped first on ``prune``). At most ``max_sessions``
sessions are held; creating one more evicts the least recently used session
that has no request in flight.
"""
import asyncio
import logging
import threading
from collections import OrderedDict
from typing import Dict, Iterator, List

from models import Message

logger = logging.getLogger("farmer_chat.store")

MAX_MESSAGES = 20
MAX_SESSIONS = 1000


class ConversationStore:
    def __init__(self, max_messages: int = MAX_MESSAGES, max_sessions: int = MAX_SESSIONS):
        self.max_messages = max_messages
        self.max_sessions = max_sessions
        self._logs: "OrderedDict[str, List[Message]]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._mutex = threading.RLock()

    def append(self, session_id: str, message: Message) -> None:
        with self._mutex:
            log = self._logs.get(session_id)
            if log is None:
                log = self._logs[session_id] = []
                self._evict(keep=session_id)
            log.append(message)
            self._logs.move_to_end(session_id)

    def get(self, session_id: str) -> List[Message]:
        with self._mutex:
            log = self._logs.get(session_id)
            if log is None:
                return []
            self._logs.move_to_end(session_id)
            return list(log)

    def prune(self, session_id: str) -> int:
        """Drop messages from the front until the log fits. Returns how many were dropped."""
        with self._mutex:
            log = self._logs.get(session_id)
            if not log or len(log) <= self.max_messages:
                return 0
            dropped = len(log) - self.max_messages
            del log[:dropped]
            return dropped

    def delete(self, session_id: str) -> bool:
        with self._mutex:
            existed = self._logs.pop(session_id, None) is not None
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                del self._locks[session_id]
            return existed

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock; hold it across a whole request to keep turns ordered."""
        with self._mutex:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = asyncio.Lock()
            return lock

    def session_ids(self) -> List[str]:
        with self._mutex:
            return list(self._logs)

    def __contains__(self, session_id: object) -> bool:
        with self._mutex:
            return session_id in self._logs

    def __len__(self) -> int:
        with self._mutex:
            return len(self._logs)

    def __iter__(self) -> Iterator[str]:
        return iter(self.session_ids())

    def _evict(self, keep: str) -> None:
        # caller holds self._mutex
        if len(self._logs) <= self.max_sessions:
            return
        for session_id in list(self._logs):
            if len(self._logs) <= self.max_sessions:
                break
            if session_id == keep:
                continue
            lock = self._locks.get(session_id)
            if lock is not None and lock.locked():
                continue
            del self._logs[session_id]
            self._locks.pop(session_id, None)
            logger.info("Evicted idle session %s", session_id)
