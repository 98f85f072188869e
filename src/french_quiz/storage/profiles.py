"""Per-device profile store backed by a single profile-map slot.

Every mutation loads the whole profile map, changes it and writes it back
under the slot's lock. There are no partial-key updates.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from french_quiz.errors import (
    InvalidProfileName,
    ProfileLimitReached,
    ProfileNotFound,
    SessionClosed,
    SessionNotFound,
)
from french_quiz.migration.steps import migrate_profile, needs_migration
from french_quiz.models.profile import (
    DAILY_STATS_RETENTION_DAYS,
    MAX_PROFILES,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    Avatar,
    DailyStat,
    Metadata,
    PracticeMode,
    Profile,
    Session,
)
from french_quiz.progress.dates import local_date_string, prune_daily_stats, to_epoch_ms
from french_quiz.progress.merge import merge_profiles
from french_quiz.storage.kv import JsonFileStore

logger = structlog.get_logger()

PROFILES_KEY = "frenchQuizProfiles"
CURRENT_PROFILE_KEY = "frenchQuizCurrentProfileId"
NAVIGATION_KEY = "frenchQuizNavigation"
BACKUP_PREFIX = f"{PROFILES_KEY}_backup_"

Clock = Callable[[], datetime]


def normalize_profile_name(name: str) -> str:
    """Trim and bound a user-entered profile name."""
    trimmed = (name or "").strip()
    if len(trimmed) < NAME_MIN_LENGTH:
        raise InvalidProfileName(
            f"Profile name must be at least {NAME_MIN_LENGTH} characters"
        )
    return trimmed[:NAME_MAX_LENGTH]


def unique_name(desired: str, existing_names: list[str]) -> str:
    """Append " 2", " 3", ... until ``desired`` no longer collides (case-insensitive).

    The base is shortened so the result stays within the name length limit.
    """
    taken = {n.lower() for n in existing_names}
    candidate = desired
    counter = 2
    while candidate.lower() in taken:
        suffix = f" {counter}"
        candidate = f"{desired[:NAME_MAX_LENGTH - len(suffix)]}{suffix}"
        counter += 1
    return candidate


class ProfileStore:
    """Durable map of profiles for one device.

    Args:
        kv: Key-value slots for this device.
        clock: Returns the current local time.
    """

    def __init__(self, kv: JsonFileStore, clock: Clock = datetime.now):
        self.kv = kv
        self.clock = clock

    def _now_ms(self) -> int:
        return to_epoch_ms(self.clock())

    def _load_map(self) -> dict[str, dict[str, Any]]:
        return self.kv.get(PROFILES_KEY, {}) or {}

    def get(self, profile_id: str) -> Profile | None:
        data = self._load_map().get(profile_id)
        if data is None:
            return None
        return Profile.model_validate(data)

    def require(self, profile_id: str) -> Profile:
        profile = self.get(profile_id)
        if profile is None:
            raise ProfileNotFound(profile_id)
        return profile

    def upsert(self, profile: Profile) -> None:
        def _apply(profiles: dict) -> dict:
            profiles[profile.id] = profile.to_json_dict()
            return profiles

        self.kv.update(PROFILES_KEY, _apply, default={})

    def mutate(self, profile_id: str, fn: Callable[[Profile], None]) -> Profile:
        """Apply ``fn`` to one profile inside a single read-modify-write cycle.

        ``fn`` mutates the profile in place. ``last_modified`` is stamped
        afterwards.
        """
        result: dict[str, Profile] = {}

        def _apply(profiles: dict) -> dict:
            data = profiles.get(profile_id)
            if data is None:
                raise ProfileNotFound(profile_id)
            profile = Profile.model_validate(data)
            fn(profile)
            now_ms = self._now_ms()
            profile.last_modified = now_ms
            profile.metadata.last_modified = now_ms
            profiles[profile_id] = profile.to_json_dict()
            result["profile"] = profile
            return profiles

        self.kv.update(PROFILES_KEY, _apply, default={})
        return result["profile"]

    def list_profiles(self) -> dict[str, Profile]:
        """All profiles in insertion order."""
        return {
            profile_id: Profile.model_validate(data)
            for profile_id, data in self._load_map().items()
        }

    # Profile lifecycle

    def create_profile(self, name: str, avatar: Avatar = Avatar.CAT) -> Profile:
        """Create a profile, make it active and return it."""
        clean_name = normalize_profile_name(name)
        created: dict[str, Profile] = {}

        def _apply(profiles: dict) -> dict:
            if len(profiles) >= MAX_PROFILES:
                raise ProfileLimitReached(
                    f"A device can hold at most {MAX_PROFILES} profiles"
                )
            now_ms = self._now_ms()
            profile_id = f"profile-{now_ms}"
            bump = now_ms
            while profile_id in profiles:
                bump += 1
                profile_id = f"profile-{bump}"
            profile = Profile(
                id=profile_id,
                name=unique_name(clean_name, [p["name"] for p in profiles.values()]),
                avatar=avatar,
                metadata=Metadata(created_at=now_ms, last_modified=now_ms),
                created_at=now_ms,
                last_modified=now_ms,
            )
            profiles[profile_id] = profile.to_json_dict()
            created["profile"] = profile
            return profiles

        self.kv.update(PROFILES_KEY, _apply, default={})
        profile = created["profile"]
        self.switch_profile(profile.id)
        logger.info("profile_created", profile_id=profile.id, name=profile.name)
        return profile

    def rename_profile(self, profile_id: str, new_name: str) -> Profile:
        clean_name = normalize_profile_name(new_name)
        others = [
            p.name for pid, p in self.list_profiles().items() if pid != profile_id
        ]

        def _rename(profile: Profile) -> None:
            profile.name = unique_name(clean_name, others)

        return self.mutate(profile_id, _rename)

    def update_avatar(self, profile_id: str, avatar: Avatar) -> Profile:
        def _set_avatar(profile: Profile) -> None:
            profile.avatar = Avatar(avatar)

        return self.mutate(profile_id, _set_avatar)

    def delete(self, profile_id: str, confirm: Callable[[Profile], bool]) -> bool:
        """Delete a profile after ``confirm`` approves. Irreversible.

        Returns False when the confirmation is declined.
        """
        profile = self.require(profile_id)
        if not confirm(profile):
            return False

        remaining: list[str] = []

        def _apply(profiles: dict) -> dict:
            profiles.pop(profile_id, None)
            remaining.extend(profiles.keys())
            return profiles

        self.kv.update(PROFILES_KEY, _apply, default={})
        if self.active_profile_id() == profile_id:
            self.switch_profile(remaining[0] if remaining else None)
        logger.info("profile_deleted", profile_id=profile_id)
        return True

    # Active pointer and navigation

    def active_profile_id(self) -> str | None:
        return self.kv.get(CURRENT_PROFILE_KEY)

    def switch_profile(self, profile_id: str | None) -> None:
        self.kv.set(CURRENT_PROFILE_KEY, profile_id)

    def active_profile(self) -> Profile | None:
        profile_id = self.active_profile_id()
        if not profile_id:
            return None
        return self.get(profile_id)

    def navigation_state(self) -> dict[str, Any]:
        return self.kv.get(NAVIGATION_KEY, {}) or {}

    def save_navigation_state(self, state: dict[str, Any]) -> None:
        self.kv.set(NAVIGATION_KEY, state)

    # Import

    def import_profile(self, snapshot: dict[str, Any] | Profile) -> Profile:
        """Adopt a redeemed snapshot, merging when the profile already exists.

        Raises:
            ProfileLimitReached: The snapshot is a new profile and the device is full.
            InvalidProfileName: The snapshot's name is shorter than the minimum.
        """
        if isinstance(snapshot, Profile):
            snapshot = snapshot.to_json_dict()
        if needs_migration(snapshot):
            snapshot = migrate_profile(snapshot)
        imported = Profile.model_validate(snapshot)
        imported.name = normalize_profile_name(imported.name)
        outcome: dict[str, Any] = {}

        def _apply(profiles: dict) -> dict:
            existing = profiles.get(imported.id)
            if existing is not None:
                merged = merge_profiles(Profile.model_validate(existing), imported)
                outcome["merged"] = True
            else:
                if len(profiles) >= MAX_PROFILES:
                    raise ProfileLimitReached(
                        f"A device can hold at most {MAX_PROFILES} profiles; "
                        "delete one before importing a new profile"
                    )
                merged = imported
                outcome["merged"] = False
            profiles[imported.id] = merged.to_json_dict()
            outcome["profile"] = merged
            return profiles

        self.kv.update(PROFILES_KEY, _apply, default={})
        logger.info(
            "profile_imported", profile_id=imported.id, merged=outcome["merged"]
        )
        return outcome["profile"]

    # Quiz sessions

    def start_session(
        self,
        profile_id: str,
        mode: PracticeMode = PracticeMode.MULTIPLE_CHOICE,
        category: str | None = None,
    ) -> str:
        now_ms = self._now_ms()
        session_id = f"session-{now_ms}"

        def _start(profile: Profile) -> None:
            sid = session_id
            bump = now_ms
            while sid in profile.sessions:
                bump += 1
                sid = f"session-{bump}"
            profile.sessions[sid] = Session(
                start_time=now_ms, mode=PracticeMode(mode), category=category
            )
            started["id"] = sid

        started: dict[str, str] = {}
        self.mutate(profile_id, _start)
        return started["id"]

    def end_session(
        self,
        profile_id: str,
        session_id: str,
        items_attempted: int,
        items_correct: int,
    ) -> Session:
        """Finalize a session and roll its duration into the profile totals."""
        now = self.clock()
        now_ms = to_epoch_ms(now)
        ended: dict[str, Session] = {}

        def _end(profile: Profile) -> None:
            session = profile.sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if session.is_closed:
                raise SessionClosed(session_id)
            duration = max(0, now_ms - session.start_time)
            accuracy = round(items_correct / items_attempted * 100) if items_attempted else 0
            closed = session.model_copy(
                update={
                    "end_time": now_ms,
                    "duration": duration,
                    "items_attempted": items_attempted,
                    "items_correct": items_correct,
                    "accuracy": accuracy,
                }
            )
            profile.sessions[session_id] = closed

            meta = profile.metadata
            meta.total_sessions += 1
            meta.total_practice_time += duration
            today = local_date_string(now)
            daily = meta.daily_stats.setdefault(today, DailyStat(start_time=now_ms))
            daily.sessions_completed += 1
            meta.daily_stats = prune_daily_stats(
                meta.daily_stats, now, DAILY_STATS_RETENTION_DAYS
            )
            ended["session"] = closed

        self.mutate(profile_id, _end)
        return ended["session"]
