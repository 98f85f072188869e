"""Apply quiz answers to a profile's word stats, streak and daily aggregates."""

from collections.abc import Callable
from datetime import datetime

import structlog

from french_quiz.models.profile import (
    DAILY_STATS_RETENTION_DAYS,
    RECENT_HISTORY_LIMIT,
    AttemptRecord,
    DailyStat,
    Metadata,
    PracticeMode,
    Profile,
    WordStat,
)
from french_quiz.progress.dates import (
    local_date_string,
    prune_daily_stats,
    to_epoch_ms,
    yesterday_date_string,
)
from french_quiz.storage.profiles import ProfileStore

logger = structlog.get_logger()


def update_streak(metadata: Metadata, now: datetime) -> None:
    """Advance the practice streak for an attempt made at local time ``now``."""
    today = local_date_string(now)
    if metadata.last_practice_date != today:
        if metadata.last_practice_date == yesterday_date_string(now):
            metadata.current_streak += 1
        else:
            metadata.current_streak = 1
    metadata.longest_streak = max(metadata.longest_streak, metadata.current_streak)
    metadata.last_practice_date = today


def apply_attempt(
    profile: Profile,
    word_id: str,
    is_correct: bool,
    mode: PracticeMode,
    category: str,
    session_id: str | None,
    now: datetime,
) -> None:
    """Mutate ``profile`` in place for one answer."""
    now_ms = to_epoch_ms(now)

    stat = profile.stats.get(word_id)
    if stat is None:
        stat = WordStat(category=category, first_attempt=now_ms)
        profile.stats[word_id] = stat
    if stat.first_attempt is None:
        stat.first_attempt = now_ms

    record = AttemptRecord(
        timestamp=now_ms, correct=is_correct, mode=mode, session_id=session_id
    )
    stat.recent_history = [record, *stat.recent_history][:RECENT_HISTORY_LIMIT]
    stat.attempts += 1
    if is_correct:
        stat.correct += 1
    else:
        stat.incorrect += 1
    stat.last_practiced = now_ms

    meta = profile.metadata
    update_streak(meta, now)

    today = local_date_string(now)
    daily = meta.daily_stats.get(today)
    if daily is None:
        daily = DailyStat(start_time=now_ms)
        meta.daily_stats[today] = daily
    daily.attempts += 1
    if is_correct:
        daily.correct += 1
    else:
        daily.incorrect += 1
    daily.words_attempted.add(word_id)
    meta.daily_stats = prune_daily_stats(meta.daily_stats, now, DAILY_STATS_RETENTION_DAYS)


class AttemptRecorder:
    """Records quiz answers against the profile store.

    Args:
        store: Profile store to update.
        clock: Returns the current local time. Defaults to ``datetime.now``.
    """

    def __init__(self, store: ProfileStore, clock: Callable[[], datetime] | None = None):
        self.store = store
        self.clock = clock or store.clock

    def record_attempt(
        self,
        profile_id: str,
        word_id: str | int,
        is_correct: bool,
        mode: PracticeMode | str = PracticeMode.MULTIPLE_CHOICE,
        category: str = "unknown",
        session_id: str | None = None,
    ) -> None:
        now = self.clock()
        word_key = str(word_id)
        self.store.mutate(
            profile_id,
            lambda profile: apply_attempt(
                profile, word_key, is_correct, PracticeMode(mode), category, session_id, now
            ),
        )
        logger.debug(
            "attempt_recorded",
            profile_id=profile_id,
            word_id=word_key,
            correct=is_correct,
        )

    def add_daily_session_time(self, profile_id: str, duration_ms: int) -> None:
        """Add elapsed practice time to today's aggregate. Always adds, never sets."""
        if duration_ms <= 0:
            return
        now = self.clock()

        def _add(profile: Profile) -> None:
            meta = profile.metadata
            today = local_date_string(now)
            daily = meta.daily_stats.get(today)
            if daily is None:
                daily = DailyStat(start_time=to_epoch_ms(now))
                meta.daily_stats[today] = daily
            daily.time_spent += int(duration_ms)
            meta.daily_stats = prune_daily_stats(
                meta.daily_stats, now, DAILY_STATS_RETENTION_DAYS
            )

        self.store.mutate(profile_id, _add)
