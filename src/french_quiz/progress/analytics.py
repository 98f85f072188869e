"""Progress summaries, practice recommendations and achievement thresholds."""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from french_quiz.models.profile import Profile, WordStat
from french_quiz.progress.dates import local_date_string, to_epoch_ms

NEEDS_PRACTICE_ACCURACY = 60.0
NEEDS_PRACTICE_MIN_ATTEMPTS = 2
MASTERED_ACCURACY = 90.0
MASTERED_MIN_ATTEMPTS = 3
RECENT_ACTIVITY_LIMIT = 20
RECOMMENDATION_ITEMS = 5


class OverallStats(BaseModel):
    total_items: int = 0
    total_attempts: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    accuracy: float = 0.0


class StreakInfo(BaseModel):
    current: int = 0
    longest: int = 0
    last_practice: str | None = None
    is_active_today: bool = False


class WordSummary(BaseModel):
    word_id: str
    category: str
    attempts: int
    correct: int
    accuracy: float
    last_practiced: int | None = None
    days_since_last_practice: int | None = None


class ActivityItem(BaseModel):
    word_id: str
    timestamp: int
    correct: bool
    mode: str
    session_id: str | None = None


class CategoryProgress(BaseModel):
    total_items: int = 0
    attempted: int = 0
    mastered: int = 0
    total_attempts: int = 0
    total_correct: int = 0
    accuracy: float = 0.0


class Recommendation(BaseModel):
    type: str  # "struggling", "neglected", "explore"
    message: str
    items: list[WordSummary] = Field(default_factory=list)


# (id, metric, threshold)
ACHIEVEMENT_THRESHOLDS: list[tuple[str, str, float]] = [
    ("first-word", "words", 1),
    ("vocab-explorer", "words", 25),
    ("word-collector", "words", 50),
    ("vocabulary-master", "words", 100),
    ("daily-learner", "streak", 3),
    ("week-warrior", "streak", 7),
    ("unstoppable", "streak", 30),
    ("mastery-begins", "mastered", 10),
]
ACE_STUDENT_ACCURACY = 95.0
ACE_STUDENT_MIN_ATTEMPTS = 50


def _summary(word_id: str, stat: WordStat, now: datetime | None = None) -> WordSummary:
    days_since = None
    if now is not None and stat.last_practiced is not None:
        days_since = (to_epoch_ms(now) - stat.last_practiced) // (24 * 60 * 60 * 1000)
    return WordSummary(
        word_id=word_id,
        category=stat.category,
        attempts=stat.attempts,
        correct=stat.correct,
        accuracy=stat.accuracy,
        last_practiced=stat.last_practiced,
        days_since_last_practice=days_since,
    )


def _is_mastered(stat: WordStat) -> bool:
    return stat.accuracy >= MASTERED_ACCURACY and stat.attempts >= MASTERED_MIN_ATTEMPTS


def overall_stats(profile: Profile) -> OverallStats:
    stats = profile.stats.values()
    total_attempts = sum(s.attempts for s in stats)
    total_correct = sum(s.correct for s in stats)
    return OverallStats(
        total_items=len(profile.stats),
        total_attempts=total_attempts,
        total_correct=total_correct,
        total_incorrect=sum(s.incorrect for s in stats),
        accuracy=total_correct / total_attempts * 100 if total_attempts else 0.0,
    )


def streak_info(profile: Profile, now: datetime | None = None) -> StreakInfo:
    now = now or datetime.now()
    meta = profile.metadata
    return StreakInfo(
        current=meta.current_streak,
        longest=meta.longest_streak,
        last_practice=meta.last_practice_date,
        is_active_today=meta.last_practice_date == local_date_string(now),
    )


def needs_practice(profile: Profile) -> list[WordSummary]:
    """Words with accuracy below 60% after at least two attempts, weakest first."""
    items = [
        _summary(word_id, stat)
        for word_id, stat in profile.stats.items()
        if stat.accuracy < NEEDS_PRACTICE_ACCURACY
        and stat.attempts >= NEEDS_PRACTICE_MIN_ATTEMPTS
    ]
    return sorted(items, key=lambda s: s.accuracy)


def mastered(profile: Profile) -> list[WordSummary]:
    return [
        _summary(word_id, stat)
        for word_id, stat in profile.stats.items()
        if _is_mastered(stat)
    ]


def recent_activity(profile: Profile, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ActivityItem]:
    activity = [
        ActivityItem(
            word_id=word_id,
            timestamp=record.timestamp,
            correct=record.correct,
            mode=record.mode.value,
            session_id=record.session_id,
        )
        for word_id, stat in profile.stats.items()
        for record in stat.recent_history
    ]
    activity.sort(key=lambda a: a.timestamp, reverse=True)
    return activity[:limit]


def category_progress(profile: Profile) -> dict[str, CategoryProgress]:
    progress: dict[str, CategoryProgress] = {}
    for stat in profile.stats.values():
        entry = progress.setdefault(stat.category or "unknown", CategoryProgress())
        entry.total_items += 1
        entry.attempted += 1
        entry.total_attempts += stat.attempts
        entry.total_correct += stat.correct
        if _is_mastered(stat):
            entry.mastered += 1
    for entry in progress.values():
        if entry.total_attempts:
            entry.accuracy = entry.total_correct / entry.total_attempts * 100
    return progress


def achievements(profile: Profile) -> list[str]:
    """Ids of the achievements this profile has unlocked."""
    overall = overall_stats(profile)
    metrics = {
        "words": overall.total_items,
        "streak": profile.metadata.current_streak,
        "mastered": len(mastered(profile)),
    }
    unlocked = [
        achievement_id
        for achievement_id, metric, threshold in ACHIEVEMENT_THRESHOLDS
        if metrics[metric] >= threshold
    ]
    if (
        overall.accuracy >= ACE_STUDENT_ACCURACY
        and overall.total_attempts >= ACE_STUDENT_MIN_ATTEMPTS
    ):
        unlocked.append("ace-student")
    return unlocked


def neglected_items(
    profile: Profile, days: int = 7, now: datetime | None = None
) -> list[WordSummary]:
    """Words not practiced for more than ``days`` days, oldest first."""
    now = now or datetime.now()
    cutoff = to_epoch_ms(now - timedelta(days=days))
    items = [
        _summary(word_id, stat, now)
        for word_id, stat in profile.stats.items()
        if stat.last_practiced is not None and stat.last_practiced < cutoff
    ]
    return sorted(items, key=lambda s: s.last_practiced)


def practice_recommendation(profile: Profile, now: datetime | None = None) -> Recommendation:
    """Struggling words first, then neglected words, otherwise explore new content."""
    struggling = needs_practice(profile)
    if struggling:
        return Recommendation(
            type="struggling",
            message=f"Practice {len(struggling)} words that need improvement",
            items=struggling[:RECOMMENDATION_ITEMS],
        )
    neglected = neglected_items(profile, 7, now)
    if neglected:
        return Recommendation(
            type="neglected",
            message=f"Review {len(neglected)} words you haven't practiced recently",
            items=neglected[:RECOMMENDATION_ITEMS],
        )
    return Recommendation(type="explore", message="Ready to explore new words?")
