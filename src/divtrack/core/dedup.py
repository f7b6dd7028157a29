"""Processed-event deduplication with a debounced persistent write-behind."""

import threading
from typing import Optional

from divtrack.config.logging import get_logger
from divtrack.core.models import GameType
from divtrack.db.repository import Repository

logger = get_logger()

DEDUP_FLUSH_DELAY_SECONDS = 1.0

# Global ids kept after a session stops
PROCESSED_IDS_KEEP = 20


class ProcessedIdWriter:
    """
    Debounced writer for the persisted global id set.

    Every enqueue restarts a timer; when it fires the whole in-memory set is
    written in one transaction. flush() and cancel() give the lifecycle
    explicit control over pending writes.
    """

    def __init__(
        self,
        repository: Repository,
        game: GameType,
        source: "DedupTracker",
        delay: float = DEDUP_FLUSH_DELAY_SECONDS,
    ) -> None:
        self._repo = repository
        self._game = game
        self._source = source
        self._delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        # Held across reading the id set and writing it
        self.write_lock = threading.RLock()

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def enqueue(self, event_id: str) -> None:
        """Schedule a write that will include event_id."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Drop the pending write, if any, including a timer already waiting to write."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> int:
        """Write the current global set now. Returns the number of ids written."""
        with self.write_lock:
            self.cancel()
            ids = self._source.global_ids()
            written = self._repo.replace_processed_ids(self._game, ids)
        logger.debug(f"Flushed {written} processed ids for {self._game.value}")
        return written

    def _on_timer(self) -> None:
        with self.write_lock:
            with self._lock:
                if self._timer is not threading.current_thread():
                    # Cancelled or superseded while waiting for the write lock
                    return
            try:
                ids = self._source.global_ids()
                self._repo.replace_processed_ids(self._game, ids)
            except Exception:
                logger.exception(f"Debounced processed-id write failed for {self._game.value}")
            finally:
                with self._lock:
                    if self._timer is threading.current_thread():
                        self._timer = None


class DedupTracker:
    """
    Session and global sets of processed event ids for one game.

    An event is accepted only if its id is in neither set. The global set
    survives across sessions and restarts; the session set is cleared when
    a session starts or stops.
    """

    def __init__(
        self,
        repository: Repository,
        game: GameType,
        flush_delay: float = DEDUP_FLUSH_DELAY_SECONDS,
    ) -> None:
        self._repo = repository
        self.game = game
        self._session_ids: set[str] = set()
        # dict preserves insertion order for pruning
        self._global_ids: dict[str, None] = {}
        self._lock = threading.Lock()
        self.writer = ProcessedIdWriter(repository, game, self, delay=flush_delay)

    def load(self) -> int:
        """Seed the global set from storage. Returns the number of ids loaded."""
        ids = self._repo.load_processed_ids(self.game)
        with self._lock:
            self._global_ids = dict.fromkeys(ids)
        return len(ids)

    def accept(self, event_id: str) -> bool:
        """
        Record event_id if it has not been seen.

        Returns:
            True if the event is new and must be counted, False for a duplicate.
        """
        with self._lock:
            if event_id in self._session_ids or event_id in self._global_ids:
                return False
            self._session_ids.add(event_id)
            self._global_ids[event_id] = None
        self.writer.enqueue(event_id)
        return True

    def contains(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._session_ids or event_id in self._global_ids

    def reset_session(self) -> None:
        with self._lock:
            self._session_ids.clear()

    def global_ids(self) -> list[str]:
        with self._lock:
            return list(self._global_ids)

    def all_processed_ids(self) -> set[str]:
        """Union of session and global ids, for the ingestion side to skip known events."""
        with self._lock:
            return self._session_ids | set(self._global_ids)

    def flush_and_prune(self, keep: int = PROCESSED_IDS_KEEP) -> int:
        """
        Cancel the pending write, flush synchronously, then prune.

        The writer's write lock is held throughout, so a timer that already
        fired either finishes before the flush or gives up after the prune.

        Returns:
            Number of persisted ids pruned.
        """
        with self.writer.write_lock:
            self.writer.cancel()
            self.writer.flush()
            pruned = self._repo.prune_processed_ids(self.game, keep)
            with self._lock:
                if len(self._global_ids) > keep:
                    self._global_ids = dict.fromkeys(list(self._global_ids)[-keep:])
        if pruned:
            logger.debug(f"Pruned {pruned} processed ids for {self.game.value}")
        return pruned
