"""Tests for attempt recording, streaks and daily aggregates."""

from datetime import datetime, timedelta

import pytest

from french_quiz.errors import ProfileNotFound
from french_quiz.models.profile import DailyStat, Metadata, PracticeMode
from french_quiz.progress.dates import local_date_string, prune_daily_stats
from french_quiz.progress.recorder import AttemptRecorder, update_streak
from french_quiz.storage.kv import JsonFileStore
from french_quiz.storage.profiles import ProfileStore


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 5, 1, 9, 0, 0))


@pytest.fixture
def store(tmp_path, clock):
    return ProfileStore(JsonFileStore(tmp_path), clock=clock)


@pytest.fixture
def recorder(store):
    return AttemptRecorder(store)


@pytest.fixture
def profile_id(store):
    return store.create_profile("Alice").id


class TestUpdateStreak:
    def test_first_practice_starts_streak(self):
        meta = Metadata()
        update_streak(meta, datetime(2026, 5, 1, 9))
        assert meta.current_streak == 1
        assert meta.longest_streak == 1
        assert meta.last_practice_date == "2026-05-01"

    def test_same_day_is_unchanged(self):
        meta = Metadata(current_streak=4, longest_streak=6, last_practice_date="2026-05-01")
        update_streak(meta, datetime(2026, 5, 1, 22))
        assert meta.current_streak == 4
        assert meta.longest_streak == 6

    def test_consecutive_day_increments(self):
        meta = Metadata(current_streak=4, longest_streak=4, last_practice_date="2026-04-30")
        update_streak(meta, datetime(2026, 5, 1, 8))
        assert meta.current_streak == 5
        assert meta.longest_streak == 5

    def test_gap_resets_but_keeps_longest(self):
        meta = Metadata(current_streak=4, longest_streak=7, last_practice_date="2026-04-28")
        update_streak(meta, datetime(2026, 5, 1, 8))
        assert meta.current_streak == 1
        assert meta.longest_streak == 7

    def test_month_boundary(self):
        meta = Metadata(current_streak=2, longest_streak=2, last_practice_date="2026-02-28")
        update_streak(meta, datetime(2026, 3, 1, 8))
        assert meta.current_streak == 3


class TestRecordAttempt:
    def test_counters_and_invariant(self, store, recorder, profile_id):
        for correct in (True, False, True, True):
            recorder.record_attempt(profile_id, 12, correct, category="food")
        stat = store.get(profile_id).stats["12"]
        assert stat.attempts == 4
        assert stat.correct == 3
        assert stat.incorrect == 1
        assert stat.attempts == stat.correct + stat.incorrect
        assert stat.category == "food"

    def test_history_most_recent_first_and_capped(self, store, recorder, profile_id, clock):
        for _ in range(12):
            recorder.record_attempt(profile_id, "7", True, mode=PracticeMode.FLASHCARD)
            clock.advance(seconds=10)
        history = store.get(profile_id).stats["7"].recent_history
        assert len(history) == 10
        timestamps = [record.timestamp for record in history]
        assert timestamps == sorted(timestamps, reverse=True)
        assert all(record.mode == PracticeMode.FLASHCARD for record in history)

    def test_first_attempt_and_last_practiced(self, store, recorder, profile_id, clock):
        recorder.record_attempt(profile_id, "1", True)
        first = store.get(profile_id).stats["1"]
        clock.advance(minutes=30)
        recorder.record_attempt(profile_id, "1", False)
        later = store.get(profile_id).stats["1"]
        assert later.first_attempt == first.first_attempt
        assert later.last_practiced > first.last_practiced

    def test_session_id_recorded(self, store, recorder, profile_id):
        session_id = store.start_session(profile_id)
        recorder.record_attempt(profile_id, "1", True, session_id=session_id)
        assert store.get(profile_id).stats["1"].recent_history[0].session_id == session_id

    def test_streak_over_days(self, store, recorder, profile_id, clock):
        recorder.record_attempt(profile_id, "1", True)
        assert store.get(profile_id).metadata.current_streak == 1

        clock.advance(days=1)
        recorder.record_attempt(profile_id, "1", True)
        assert store.get(profile_id).metadata.current_streak == 2

        clock.advance(days=2)
        recorder.record_attempt(profile_id, "1", True)
        meta = store.get(profile_id).metadata
        assert meta.current_streak == 1
        assert meta.longest_streak == 2

    def test_late_night_then_after_midnight(self, store, recorder, profile_id, clock):
        clock.now = datetime(2026, 5, 1, 23, 30)
        recorder.record_attempt(profile_id, "1", True)
        clock.now = datetime(2026, 5, 2, 0, 10)
        recorder.record_attempt(profile_id, "2", True)

        meta = store.get(profile_id).metadata
        assert meta.current_streak == 2
        assert set(meta.daily_stats) == {"2026-05-01", "2026-05-02"}
        assert meta.daily_stats["2026-05-01"].words_attempted == {"1"}
        assert meta.daily_stats["2026-05-02"].words_attempted == {"2"}

    def test_daily_stats_distinct_words(self, store, recorder, profile_id):
        for word_id in ("1", "1", "2"):
            recorder.record_attempt(profile_id, word_id, False)
        daily = store.get(profile_id).metadata.daily_stats["2026-05-01"]
        assert daily.attempts == 3
        assert daily.incorrect == 3
        assert daily.words_attempted == {"1", "2"}
        assert daily.start_time is not None

    def test_daily_stats_pruned_to_ninety_days(self, store, recorder, profile_id, clock):
        recorder.record_attempt(profile_id, "1", True)
        clock.advance(days=89)
        recorder.record_attempt(profile_id, "1", True)
        assert len(store.get(profile_id).metadata.daily_stats) == 2

        clock.advance(days=1)
        recorder.record_attempt(profile_id, "1", True)
        daily = store.get(profile_id).metadata.daily_stats
        assert "2026-05-01" not in daily
        assert len(daily) == 2

    def test_unknown_profile(self, recorder):
        with pytest.raises(ProfileNotFound):
            recorder.record_attempt("profile-missing", "1", True)


class TestDailySessionTime:
    def test_adds_duration(self, store, recorder, profile_id):
        recorder.add_daily_session_time(profile_id, 60_000)
        recorder.add_daily_session_time(profile_id, 30_000)
        assert store.get(profile_id).metadata.daily_stats["2026-05-01"].time_spent == 90_000

    def test_ignores_non_positive(self, store, recorder, profile_id):
        recorder.add_daily_session_time(profile_id, 0)
        recorder.add_daily_session_time(profile_id, -5)
        assert store.get(profile_id).metadata.daily_stats == {}


class TestDates:
    def test_local_date_string(self):
        assert local_date_string(datetime(2026, 1, 9, 23, 59)) == "2026-01-09"

    def test_prune_drops_invalid_keys(self):
        daily = {"2026-05-01": DailyStat(), "garbage": DailyStat()}
        assert list(prune_daily_stats(daily, datetime(2026, 5, 1))) == ["2026-05-01"]
