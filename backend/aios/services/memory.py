"""In-process conversation memory used as model context.

Each conversation keeps a sliding window of its most recent turns. The store
itself is a bounded LRU cache: at most ``capacity`` conversations are kept,
the least recently used one is evicted first, and conversations idle for
longer than ``idle_ttl`` seconds are dropped when next touched.

Conversation ids are opaque strings. Chat turns store history under
``conversation_key(user_id, conversation_id)`` so two users never share an
entry; the store itself does no tenant checks.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


def conversation_key(user_id: str, conversation_id: str) -> str:
    return f"{user_id}:{conversation_id}"


@dataclass(frozen=True)
class Turn:
    role: str  # "user" | "model"
    text: str

    def to_gemini(self) -> dict:
        return {"role": self.role, "parts": [{"text": self.text}]}


@dataclass
class _Entry:
    turns: list[Turn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    touched_at: float = 0.0


class ConversationMemory:
    def __init__(
        self,
        window_size: int,
        capacity: int = 1000,
        idle_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.window_size = window_size
        self.capacity = capacity
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._closed = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, conversation_id: str) -> bool:
        return self._live_entry(conversation_id) is not None

    def get(self, conversation_id: str) -> tuple[Turn, ...]:
        """Return the windowed history, oldest first. Empty if unseen."""
        entry = self._live_entry(conversation_id)
        if entry is None:
            return ()
        self._touch(conversation_id, entry)
        return tuple(entry.turns[-self.window_size:])

    def append(self, conversation_id: str, *turns: Turn) -> None:
        self._check_open()
        entry = self._entry_for_write(conversation_id)
        entry.turns.extend(turns)
        excess = len(entry.turns) - self.window_size
        if excess > 0:
            del entry.turns[:excess]
            logger.debug(
                f"Sliding window for '{conversation_id}': kept {self.window_size} turns, dropped {excess}"
            )

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Per-conversation lock serializing read-modify-write of one history."""
        self._check_open()
        return self._entry_for_write(conversation_id).lock

    def delete(self, conversation_id: str) -> bool:
        return self._entries.pop(conversation_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def close(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._closed = True
        logger.info(f"Conversation memory closed ({count} conversations discarded)")

    # --- internals ---

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Conversation memory is closed")

    def _expired(self, entry: _Entry) -> bool:
        if self.idle_ttl is None:
            return False
        return self._clock() - entry.touched_at > self.idle_ttl

    def _live_entry(self, conversation_id: str) -> _Entry | None:
        entry = self._entries.get(conversation_id)
        if entry is None:
            return None
        if self._expired(entry) and not entry.lock.locked():
            del self._entries[conversation_id]
            logger.debug(f"Conversation '{conversation_id}' expired after idling")
            return None
        return entry

    def _touch(self, conversation_id: str, entry: _Entry) -> None:
        entry.touched_at = self._clock()
        self._entries.move_to_end(conversation_id)

    def _entry_for_write(self, conversation_id: str) -> _Entry:
        entry = self._live_entry(conversation_id)
        if entry is None:
            entry = _Entry()
            self._entries[conversation_id] = entry
            self._evict(keep=conversation_id)
        self._touch(conversation_id, entry)
        return entry

    def _evict(self, keep: str) -> None:
        while len(self._entries) > self.capacity:
            candidates = [cid for cid in self._entries if cid != keep]
            # Prefer conversations with no turn in flight
            victim = next(
                (cid for cid in candidates if not self._entries[cid].lock.locked()),
                candidates[0],
            )
            del self._entries[victim]
            logger.debug(f"Evicted conversation '{victim}' (capacity {self.capacity})")
