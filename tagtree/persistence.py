"""
Debounced snapshot/restore of the workspace tree.

Rapid changes are coalesced: every schedule_save() restarts a timer, and
only the tree present when the timer fires is written. A pending save is
flushed when the gateway is closed, so teardown never loses it.
"""

import asyncio
import enum
import json
import logging
from typing import Callable, Optional

from .errors import PersistenceError
from .storage import Storage
from .tree import seed_tree
from .types import Tree, tree_from_list, tree_to_list

logger = logging.getLogger(__name__)

STORAGE_KEY = "geminiFileAnalyzerTreeData"
SNAPSHOT_VERSION = 1
DEFAULT_SAVE_DELAY = 0.5  # seconds


class DebounceTimer:
    """
    Cancellable one-shot timer on the running event loop.

    restart() pushes the deadline out by ``delay``; the callback runs once
    after a quiet period. Outside an event loop there is nothing to wait
    on, so restart() runs the callback immediately.

    Use as an async context manager to flush a pending call on exit.
    """

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def restart(self) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._callback()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> None:
        """Run a pending callback now. No-op when nothing is pending."""
        if self._handle is None:
            return
        self.cancel()
        self._callback()

    def _fire(self) -> None:
        self._handle = None
        self._callback()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.flush()
        return False


class SaveStatus(enum.Enum):
    SAVED = "All changes saved"
    SAVING = "Saving..."
    ERROR = "Error saving"


def serialize_tree(tree: Tree) -> str:
    return json.dumps(
        {"version": SNAPSHOT_VERSION, "tree": tree_to_list(tree)},
        ensure_ascii=False,
    )


def deserialize_tree(raw: str) -> Tree:
    """
    Parse a stored snapshot.

    Accepts the versioned envelope and a bare node list.
    Raises ValueError for anything else.
    """
    data = json.loads(raw)
    if isinstance(data, list):
        return tree_from_list(data)
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot must be an object or list, got {type(data).__name__}")
    version = data.get("version", 1)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise ValueError(f"Snapshot version {version!r} is not supported ({SNAPSHOT_VERSION})")
    return tree_from_list(data.get("tree"))


class PersistenceGateway:
    """
    Saves and restores the tree under one fixed storage key.

    ``status`` is informational only: a failed write sets ERROR and
    records ``last_error``, and the in-memory tree stays authoritative.
    """

    def __init__(
        self,
        storage: Storage,
        delay: float = DEFAULT_SAVE_DELAY,
        key: str = STORAGE_KEY,
        on_status: Optional[Callable[[SaveStatus], None]] = None,
    ):
        self._storage = storage
        self._key = key
        self._on_status = on_status
        self._pending: Optional[Tree] = None
        self._timer = DebounceTimer(delay, self._write)
        self.status = SaveStatus.SAVED
        self.last_error: Optional[PersistenceError] = None
        self.writes = 0

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def _set_status(self, status: SaveStatus) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    def schedule_save(self, tree: Tree) -> None:
        """Save ``tree`` after the debounce delay, superseding any pending save."""
        self._pending = tree
        self._set_status(SaveStatus.SAVING)
        self._timer.restart()

    def _write(self) -> None:
        tree, self._pending = self._pending, None
        if tree is None:
            return
        try:
            self._storage.set(self._key, serialize_tree(tree))
        except Exception as e:
            logger.error("Could not save workspace: %s", e)
            self.last_error = PersistenceError(f"Could not save workspace: {e}")
            self._set_status(SaveStatus.ERROR)
            return
        self.writes += 1
        self.last_error = None
        self._set_status(SaveStatus.SAVED)
        logger.debug("Workspace saved (%d top-level nodes)", len(tree))

    def flush(self) -> None:
        """Write a pending snapshot now."""
        self._timer.flush()

    def load_or_default(self) -> Tree:
        """Stored tree, or the seed tree if nothing usable is stored."""
        try:
            raw = self._storage.get(self._key)
        except Exception as e:
            logger.warning("Could not read saved workspace, using defaults: %s", e)
            return seed_tree()
        if raw is None:
            return seed_tree()
        try:
            return deserialize_tree(raw)
        except (ValueError, TypeError, RecursionError) as e:
            logger.warning("Saved workspace is malformed, using defaults: %s", e)
            return seed_tree()

    def clear(self) -> None:
        """Drop any pending save and the stored snapshot."""
        self._timer.cancel()
        self._pending = None
        self._storage.delete(self._key)
        self._set_status(SaveStatus.SAVED)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.flush()
        return False
