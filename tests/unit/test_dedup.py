"""Tests for processed-event deduplication."""

import threading
import time
from unittest.mock import Mock

from divtrack.core.dedup import DedupTracker, ProcessedIdWriter
from divtrack.core.models import GameType
from divtrack.db.repository import Repository


class TestDedupTracker:
    def test_accepts_new_rejects_duplicate(self, repo):
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=60)
        assert tracker.accept("e1") is True
        assert tracker.accept("e1") is False
        assert tracker.accept("e2") is True
        tracker.writer.cancel()

    def test_reset_session_keeps_global_set(self, repo):
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=60)
        tracker.accept("e1")
        tracker.reset_session()
        assert tracker.accept("e1") is False
        tracker.writer.cancel()

    def test_load_seeds_global_set(self, repo):
        repo.replace_processed_ids(GameType.POE1, ["old-1", "old-2"])
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=60)
        assert tracker.load() == 2
        assert tracker.accept("old-1") is False
        assert tracker.all_processed_ids() == {"old-1", "old-2"}

    def test_games_do_not_share_ids(self, repo):
        poe1 = DedupTracker(repo, GameType.POE1, flush_delay=60)
        poe2 = DedupTracker(repo, GameType.POE2, flush_delay=60)
        assert poe1.accept("e1") is True
        assert poe2.accept("e1") is True
        poe1.writer.cancel()
        poe2.writer.cancel()

    def test_flush_and_prune_persists_last_ids(self, repo):
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=60)
        for i in range(25):
            tracker.accept(f"e{i}")

        pruned = tracker.flush_and_prune(keep=20)

        assert pruned == 5
        assert repo.load_processed_ids(GameType.POE1) == [f"e{i}" for i in range(5, 25)]
        assert tracker.writer.is_pending is False
        # Pruned ids leave memory too, so the next flush cannot resurrect them
        assert tracker.contains("e0") is False
        assert tracker.contains("e24") is True

    def test_flush_happens_before_prune(self):
        repo = Mock(spec=Repository)
        repo.load_processed_ids.return_value = []
        repo.prune_processed_ids.return_value = 0
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=60)
        tracker.accept("e1")

        tracker.flush_and_prune()

        names = [c[0] for c in repo.method_calls]
        assert names.index("replace_processed_ids") < names.index("prune_processed_ids")
        repo.replace_processed_ids.assert_called_once_with(GameType.POE1, ["e1"])

    def test_prune_waits_for_timer_write_in_progress(self, repo):
        tracker = DedupTracker(repo, GameType.POE1, flush_delay=0.05)
        timer_writing = threading.Event()
        release_timer = threading.Event()
        replace = repo.replace_processed_ids

        def slow_replace(game, ids):
            if threading.current_thread() is not threading.main_thread():
                timer_writing.set()
                release_timer.wait(timeout=5)
            return replace(game, ids)

        repo.replace_processed_ids = slow_replace
        for i in range(25):
            tracker.accept(f"e{i}")
        assert timer_writing.wait(timeout=5)

        pruner = threading.Thread(target=tracker.flush_and_prune, kwargs={"keep": 20})
        pruner.start()
        time.sleep(0.05)
        release_timer.set()
        pruner.join(timeout=5)

        assert not pruner.is_alive()
        assert repo.load_processed_ids(GameType.POE1) == [f"e{i}" for i in range(5, 25)]


class TestProcessedIdWriter:
    def _writer(self, delay):
        repo = Mock(spec=Repository)
        written = threading.Event()
        repo.replace_processed_ids.side_effect = lambda game, ids: written.set()
        source = Mock()
        source.global_ids.return_value = ["e1", "e2", "e3"]
        writer = ProcessedIdWriter(repo, GameType.POE1, source, delay=delay)
        return writer, repo, written

    def test_debounce_writes_once(self):
        writer, repo, written = self._writer(delay=0.2)
        writer.enqueue("e1")
        writer.enqueue("e2")
        writer.enqueue("e3")

        assert written.wait(timeout=5)
        assert repo.replace_processed_ids.call_count == 1
        repo.replace_processed_ids.assert_called_with(GameType.POE1, ["e1", "e2", "e3"])

    def test_cancel_drops_pending_write(self):
        writer, repo, written = self._writer(delay=0.1)
        writer.enqueue("e1")
        writer.cancel()

        assert not written.wait(timeout=0.5)
        repo.replace_processed_ids.assert_not_called()

    def test_flush_writes_immediately(self):
        writer, repo, _ = self._writer(delay=60)
        writer.enqueue("e1")

        writer.flush()

        repo.replace_processed_ids.assert_called_once()
        assert writer.is_pending is False
