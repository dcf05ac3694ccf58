"""Focus stack: LIFO history of non-project focus.

Activation pushes whatever was focused outside project workspaces; closing
or exiting a project pops it to put the user back where they were. The stack
is bounded by depth and age. Stale entries are pruned lazily on access, not
by a timer.

Every mutation is atomic under a lock, so menu actions, the switcher and the
CLI can share one instance. When a FocusHistoryStore is attached, the stack
is written to disk after each mutation so separate `ap` invocations share
history.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..core.state_files import malformed, read_json, write_json_atomic
from ..errors import ApError, ErrorCode
from ..models.focus import FocusEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 20
DEFAULT_MAX_AGE = timedelta(days=7)

HISTORY_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FocusHistoryStore:
    """Versioned JSON persistence for the focus stack."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> List[FocusEntry]:
        """Load persisted entries, oldest first.

        Returns:
            Entries, or an empty list if the file does not exist

        Raises:
            ApError: stateLoadFailed on read, JSON, version or entry errors
        """
        data = read_json(self.path, "focus history")
        if data is None:
            return []

        if not isinstance(data, dict) or data.get("version") != HISTORY_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            raise ApError(
                code=ErrorCode.STATE_LOAD_FAILED,
                message=f"Unsupported focus history version: {version!r}",
                suggestion=f"Delete {self.path} to start a fresh history",
                context={"path": str(self.path)}
            )

        stack = data.get("stack", [])
        if not isinstance(stack, list):
            raise malformed(self.path, "focus history", f"stack is {type(stack).__name__}, not a list")

        entries = []
        for item in stack:
            if not isinstance(item, dict):
                raise malformed(self.path, "focus history", f"entry {item!r} is not an object")
            try:
                entries.append(FocusEntry.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                raise malformed(self.path, "focus history entry", str(e)) from e
        return entries

    def save(self, entries: List[FocusEntry]) -> None:
        """Write entries atomically (temp file + rename).

        Raises:
            ApError: stateSaveFailed
        """
        data = {
            "version": HISTORY_VERSION,
            "stack": [entry.to_dict() for entry in entries],
        }
        write_json_atomic(self.path, data, "focus history")


class FocusStack:
    """Bounded, age-pruned LIFO of FocusEntry values."""

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_age: timedelta = DEFAULT_MAX_AGE,
        store: Optional[FocusHistoryStore] = None,
        clock: Callable[[], datetime] = utc_now,
        entries: Optional[List[FocusEntry]] = None,
    ):
        """Initialize focus stack.

        Args:
            max_depth: Entries kept; the oldest is evicted on overflow
            max_age: Entries older than this are pruned on access
            store: Optional persistence, written after each mutation
            clock: Source of timezone-aware "now"
            entries: Initial entries, oldest first
        """
        if max_depth <= 0:
            raise ValueError("max_depth must be positive")
        if max_age <= timedelta(0):
            raise ValueError("max_age must be positive")

        self.max_depth = max_depth
        self.max_age = max_age
        self.store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: List[FocusEntry] = list(entries or [])[-max_depth:]

    @classmethod
    def open(
        cls,
        store: FocusHistoryStore,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ) -> "FocusStack":
        """Create a stack seeded from disk.

        Raises:
            ApError: stateLoadFailed
        """
        entries = store.load()
        stack = cls(max_depth=max_depth, max_age=max_age, store=store, clock=clock, entries=entries)
        logger.debug(f"Loaded {len(stack)} focus history entries from {store.path}")
        return stack

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> List[FocusEntry]:
        """Snapshot of the stack, oldest first."""
        with self._lock:
            return list(self._entries)

    # ------------------------------------------------------------------
    # Mutations (callers hold the lock)
    # ------------------------------------------------------------------

    def _prune_locked(self, now: datetime) -> int:
        cutoff = now - self.max_age
        kept = [e for e in self._entries if e.captured_at >= cutoff]
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = kept
            logger.debug(f"Pruned {removed} stale focus entries")
        return removed

    def _persist_locked(self) -> None:
        if self.store is not None:
            self.store.save(list(self._entries))

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def push(self, entry: FocusEntry) -> bool:
        """Push an entry.

        Returns:
            False if the entry repeats the current top (same identity) and was skipped

        Raises:
            ApError: stateSaveFailed (the in-memory push still happened)
        """
        with self._lock:
            self._prune_locked(self._clock())

            if self._entries and self._entries[-1].kind == entry.kind \
                    and self._entries[-1].identity == entry.identity:
                logger.debug(f"Skipping duplicate focus entry {entry.identity}")
                return False

            self._entries.append(entry)
            if len(self._entries) > self.max_depth:
                evicted = self._entries.pop(0)
                logger.debug(f"Focus stack full, evicted {evicted.identity}")

            self._persist_locked()
            return True

    def peek(self) -> Optional[FocusEntry]:
        """Most recent live entry, without removing it."""
        with self._lock:
            if self._prune_locked(self._clock()):
                self._persist_locked()
            return self._entries[-1] if self._entries else None

    def peek_and_pop(self) -> Optional[FocusEntry]:
        """Remove and return the most recent live entry."""
        with self._lock:
            self._prune_locked(self._clock())
            if not self._entries:
                return None
            entry = self._entries.pop()
            self._persist_locked()
            return entry

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop entries older than max_age.

        Returns:
            Number of entries removed
        """
        with self._lock:
            removed = self._prune_locked(now or self._clock())
            if removed:
                self._persist_locked()
            return removed

    async def pop_first_valid(
        self,
        is_valid: Callable[[FocusEntry], Awaitable[bool]],
    ) -> Optional[FocusEntry]:
        """Pop entries until one passes `is_valid`; invalid ones are discarded.

        Each entry is only removed after the validator has judged it. If the
        validator raises, the entry stays on the stack for a later attempt.
        The lock is not held while the validator runs, since it may talk to
        external processes.
        """
        while True:
            entry = self.peek()
            if entry is None:
                return None
            valid = await is_valid(entry)
            self._discard(entry)
            if valid:
                return entry
            logger.info(f"Discarding unusable focus entry {entry.identity}")

    def _discard(self, entry: FocusEntry) -> None:
        """Remove the newest copy of `entry`, if it is still on the stack."""
        with self._lock:
            for index in range(len(self._entries) - 1, -1, -1):
                if self._entries[index] == entry:
                    del self._entries[index]
                    self._persist_locked()
                    return

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._persist_locked()
