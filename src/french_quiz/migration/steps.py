"""Versioned schema upgrades for stored profile records.

Each step is a pure function taking a raw profile dict at version N and
returning a new dict at version N + 1. ``migrate_profile`` composes the
steps from the record's version up to ``CURRENT_VERSION``.
"""

import copy
import random
from collections.abc import Callable
from datetime import datetime
from typing import Any

from french_quiz.models.profile import (
    CURRENT_VERSION,
    DAILY_STATS_RETENTION_DAYS,
    Avatar,
    PracticeMode,
)
from french_quiz.progress.dates import (
    from_epoch_ms,
    local_date_string,
    prune_daily_stats,
    to_epoch_ms,
)

SYNTHETIC_HISTORY_LIMIT = 5
LEGACY_VERSION = 1

RawProfile = dict[str, Any]
MigrationStep = Callable[[RawProfile, random.Random, datetime], RawProfile]


def _is_structurally_incomplete(profile: RawProfile) -> bool:
    if not isinstance(profile, dict):
        return True
    metadata = profile.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("createdAt"):
        return True
    if profile.get("sessions") is None:
        return True
    stats = profile.get("stats") or {}
    if not isinstance(stats, dict):
        return True
    return any(
        not isinstance(stat, dict) or "recentHistory" not in stat
        for stat in stats.values()
    )


def profile_version(profile: RawProfile) -> int:
    version = profile.get("version")
    if not isinstance(version, int) or version < LEGACY_VERSION:
        return LEGACY_VERSION
    return version


def needs_migration(profile: RawProfile | None) -> bool:
    """Return True when the stored record is older than the current schema.

    Records that are not JSON objects need migration too; migrating them
    fails and the caller rolls back.
    """
    if not profile:
        return False
    if not isinstance(profile, dict):
        return True
    if profile_version(profile) < CURRENT_VERSION:
        return True
    return _is_structurally_incomplete(profile)


def synthesize_history(
    stat: RawProfile,
    created_at: int,
    modified_at: int,
    rng: random.Random,
) -> list[RawProfile]:
    """Approximate a recent history for a stat recorded before histories existed.

    Up to five records evenly spaced between ``created_at`` and
    ``modified_at``, most recent first, each correct with probability
    ``correct / attempts``. The values are statistically plausible only.
    """
    attempts = stat.get("attempts") or 0
    if attempts <= 0:
        return []
    count = min(attempts, SYNTHETIC_HISTORY_LIMIT)
    correct_ratio = (stat.get("correct") or 0) / attempts
    step = (modified_at - created_at) / (count - 1) if count > 1 else 0
    return [
        {
            "timestamp": int(modified_at - step * i),
            "correct": rng.random() < correct_ratio,
            "mode": PracticeMode.MULTIPLE_CHOICE.value,
            "sessionId": None,
        }
        for i in range(count)
    ]


def _v1_to_v2(profile: RawProfile, rng: random.Random, now: datetime) -> RawProfile:
    """Add metadata, sessions and per-word timestamps/history."""
    now_ms = to_epoch_ms(now)
    created_at = profile.get("createdAt") or now_ms
    modified_at = profile.get("lastModified") or now_ms

    metadata = {
        "currentStreak": 0,
        "longestStreak": 0,
        "lastPracticeDate": None,
        "totalSessions": 0,
        "totalPracticeTime": 0,
        "createdAt": created_at,
        "lastModified": modified_at,
        **(profile.get("metadata") or {}),
    }
    if not metadata.get("createdAt"):
        metadata["createdAt"] = created_at
    if not metadata["lastPracticeDate"]:
        # Approximation: assume the last write was a practice day.
        metadata["lastPracticeDate"] = local_date_string(from_epoch_ms(modified_at))
        metadata["currentStreak"] = max(metadata["currentStreak"] or 0, 1)
    metadata["longestStreak"] = max(
        metadata["longestStreak"] or 0, metadata["currentStreak"] or 0
    )

    stats = {}
    for word_id, stat in (profile.get("stats") or {}).items():
        if stat.get("recentHistory") is not None:
            stats[word_id] = {
                **stat,
                "firstAttempt": stat.get("firstAttempt") or created_at,
                "lastPracticed": stat.get("lastPracticed") or modified_at,
            }
            continue
        stats[word_id] = {
            "attempts": stat.get("attempts") or 0,
            "correct": stat.get("correct") or 0,
            "incorrect": stat.get("incorrect") or 0,
            "category": stat.get("category") or "unknown",
            "firstAttempt": created_at,
            "lastPracticed": modified_at,
            "recentHistory": synthesize_history(stat, created_at, modified_at, rng),
        }

    return {
        **profile,
        "stats": stats,
        "metadata": metadata,
        "sessions": profile.get("sessions") or {},
        "createdAt": created_at,
        "lastModified": modified_at,
        "version": 2,
    }


def _v2_to_v3(profile: RawProfile, rng: random.Random, now: datetime) -> RawProfile:
    """Add avatar and bounded daily aggregates."""
    avatar = profile.get("avatar")
    if avatar not in {a.value for a in Avatar}:
        avatar = Avatar.CAT.value

    metadata = dict(profile.get("metadata") or {})
    metadata["dailyStats"] = prune_daily_stats(
        metadata.get("dailyStats") or {}, now, DAILY_STATS_RETENTION_DAYS
    )
    return {**profile, "avatar": avatar, "metadata": metadata, "version": 3}


MIGRATION_STEPS: dict[int, MigrationStep] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def migrate_profile(
    old_profile: RawProfile | None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> RawProfile | None:
    """Upgrade one raw profile record to ``CURRENT_VERSION``.

    Pure: the input is not modified. A record that is already current is
    returned with only its ``version`` normalized.
    """
    if not old_profile:
        return None
    if not isinstance(old_profile, dict):
        raise ValueError(
            f"Profile record must be an object, got {type(old_profile).__name__}"
        )
    if not needs_migration(old_profile):
        return {**old_profile, "version": CURRENT_VERSION}

    rng = rng or random.Random()
    now = now or datetime.now()
    profile = copy.deepcopy(old_profile)
    version = profile_version(profile)
    if _is_structurally_incomplete(profile):
        version = LEGACY_VERSION

    while version < CURRENT_VERSION:
        profile = MIGRATION_STEPS[version](profile, rng, now)
        version += 1
    profile["version"] = CURRENT_VERSION
    return profile
