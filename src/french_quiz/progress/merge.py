"""Merge an imported profile snapshot into the local copy of the same profile.

Counters are merged by taking the maximum of each field independently.
This is an approximation: when two devices diverged asymmetrically the
merged WordStat can end up with ``attempts < correct + incorrect``.
"""

from french_quiz.models.profile import (
    RECENT_HISTORY_LIMIT,
    AttemptRecord,
    DailyStat,
    Metadata,
    Profile,
    Session,
    WordStat,
)


def _min_present(a: int | None, b: int | None) -> int | None:
    values = [v for v in (a, b) if v is not None]
    return min(values) if values else None


def _max_present(a, b):
    values = [v for v in (a, b) if v is not None]
    return max(values) if values else None


def merge_history(
    local: list[AttemptRecord], imported: list[AttemptRecord]
) -> list[AttemptRecord]:
    """Union of both histories, most recent first, capped."""
    seen = set()
    combined = []
    for record in [*imported, *local]:
        key = (record.timestamp, record.correct, record.mode, record.session_id)
        if key in seen:
            continue
        seen.add(key)
        combined.append(record)
    combined.sort(key=lambda r: r.timestamp, reverse=True)
    return combined[:RECENT_HISTORY_LIMIT]


def merge_word_stat(local: WordStat, imported: WordStat) -> WordStat:
    return WordStat(
        attempts=max(local.attempts, imported.attempts),
        correct=max(local.correct, imported.correct),
        incorrect=max(local.incorrect, imported.incorrect),
        category=imported.category or local.category,
        first_attempt=_min_present(local.first_attempt, imported.first_attempt),
        last_practiced=_max_present(local.last_practiced, imported.last_practiced),
        recent_history=merge_history(local.recent_history, imported.recent_history),
    )


def merge_stats(
    local: dict[str, WordStat], imported: dict[str, WordStat]
) -> dict[str, WordStat]:
    merged = dict(local)
    for word_id, imported_stat in imported.items():
        local_stat = local.get(word_id)
        if local_stat is None:
            merged[word_id] = imported_stat
        else:
            merged[word_id] = merge_word_stat(local_stat, imported_stat)
    return merged


def _merge_daily_stat(local: DailyStat, imported: DailyStat) -> DailyStat:
    return DailyStat(
        attempts=max(local.attempts, imported.attempts),
        correct=max(local.correct, imported.correct),
        incorrect=max(local.incorrect, imported.incorrect),
        time_spent=max(local.time_spent, imported.time_spent),
        words_attempted=local.words_attempted | imported.words_attempted,
        sessions_completed=max(local.sessions_completed, imported.sessions_completed),
        start_time=_min_present(local.start_time, imported.start_time),
    )


def merge_metadata(local: Metadata, imported: Metadata) -> Metadata:
    daily_stats = dict(local.daily_stats)
    for day, stat in imported.daily_stats.items():
        daily_stats[day] = _merge_daily_stat(daily_stats[day], stat) if day in daily_stats else stat

    current_streak = max(local.current_streak, imported.current_streak)
    return Metadata(
        current_streak=current_streak,
        longest_streak=max(local.longest_streak, imported.longest_streak, current_streak),
        last_practice_date=_max_present(local.last_practice_date, imported.last_practice_date),
        total_sessions=max(local.total_sessions, imported.total_sessions),
        total_practice_time=max(local.total_practice_time, imported.total_practice_time),
        daily_stats=dict(sorted(daily_stats.items())),
        created_at=_min_present(local.created_at, imported.created_at),
        last_modified=_max_present(local.last_modified, imported.last_modified),
    )


def merge_sessions(
    local: dict[str, Session], imported: dict[str, Session]
) -> dict[str, Session]:
    merged = dict(local)
    for session_id, session in imported.items():
        existing = merged.get(session_id)
        # A finalized session wins over an open copy of itself.
        if existing is None or not existing.is_closed or session.is_closed:
            merged[session_id] = session
    return merged


def merge_profiles(local: Profile, imported: Profile) -> Profile:
    """Combine two copies of the same profile, preferring the imported identity fields."""
    return imported.model_copy(
        update={
            "stats": merge_stats(local.stats, imported.stats),
            "metadata": merge_metadata(local.metadata, imported.metadata),
            "sessions": merge_sessions(local.sessions, imported.sessions),
            "created_at": min(local.created_at, imported.created_at),
            "last_modified": max(local.last_modified, imported.last_modified),
        }
    )
