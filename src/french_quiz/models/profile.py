"""Profile data models for per-device learning progress.

Field names are snake_case in Python and camelCase in storage and on the
wire, so snapshots written by older clients load unchanged.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_VERSION = 3
MAX_PROFILES = 3
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 20
RECENT_HISTORY_LIMIT = 10
DAILY_STATS_RETENTION_DAYS = 90


class PracticeMode(StrEnum):
    """How a word was practiced."""

    MULTIPLE_CHOICE = "multipleChoice"
    FLASHCARD = "flashcard"


class Avatar(StrEnum):
    """Avatar icon ids a profile can pick from."""

    CAT = "cat"
    DOG = "dog"
    RABBIT = "rabbit"
    BIRD = "bird"
    BUTTERFLY = "butterfly"
    FISH = "fish"
    COW = "cow"
    ALIEN = "alien"
    FLYING_SAUCER = "flyingsaucer"
    BARN = "barn"
    PAW_PRINT = "pawprint"
    ROCKET = "rocket"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)


class AttemptRecord(CamelModel):
    """One answer given for one word."""

    timestamp: int
    correct: bool
    mode: PracticeMode = PracticeMode.MULTIPLE_CHOICE
    session_id: str | None = None


class WordStat(CamelModel):
    """Aggregate accuracy and recent history for one vocabulary item."""

    attempts: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    incorrect: int = Field(default=0, ge=0)
    category: str = "unknown"
    first_attempt: int | None = None
    last_practiced: int | None = None
    recent_history: list[AttemptRecord] = Field(default_factory=list)

    @property
    def accuracy(self) -> float:
        """Percentage of correct answers (0 when never attempted)."""
        if self.attempts == 0:
            return 0.0
        return self.correct / self.attempts * 100


class DailyStat(CamelModel):
    """Aggregates for one local calendar day."""

    attempts: int = 0
    correct: int = 0
    incorrect: int = 0
    time_spent: int = 0  # ms
    words_attempted: set[str] = Field(default_factory=set)
    sessions_completed: int = 0
    start_time: int | None = None


class Metadata(CamelModel):
    """Streaks, totals and daily aggregates for a profile."""

    current_streak: int = 0
    longest_streak: int = 0
    last_practice_date: str | None = None  # YYYY-MM-DD, local calendar
    total_sessions: int = 0
    total_practice_time: int = 0  # ms
    daily_stats: dict[str, DailyStat] = Field(default_factory=dict)
    created_at: int | None = None
    last_modified: int | None = None


class Session(CamelModel):
    """A single quiz run. Never mutated once end_time is set."""

    start_time: int
    end_time: int | None = None
    duration: int | None = None
    items_attempted: int = 0
    items_correct: int = 0
    accuracy: int = 0  # percent
    mode: PracticeMode = PracticeMode.MULTIPLE_CHOICE
    category: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.end_time is not None


class Profile(CamelModel):
    """A named learner identity with its own progress data."""

    id: str
    name: str
    avatar: Avatar = Avatar.CAT
    stats: dict[str, WordStat] = Field(default_factory=dict)
    metadata: Metadata = Field(default_factory=Metadata)
    sessions: dict[str, Session] = Field(default_factory=dict)
    created_at: int
    last_modified: int
    version: int = CURRENT_VERSION
