"""Tests for the per-device profile store."""

from datetime import datetime, timedelta

import pytest

from french_quiz.errors import (
    InvalidProfileName,
    ProfileLimitReached,
    ProfileNotFound,
    SessionClosed,
    SessionNotFound,
    StorageError,
)
from french_quiz.models.profile import Avatar, Profile, WordStat
from french_quiz.storage.kv import JsonFileStore
from french_quiz.storage.profiles import PROFILES_KEY, ProfileStore, unique_name


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 10, 0, 0))


@pytest.fixture
def store(tmp_path, clock):
    return ProfileStore(JsonFileStore(tmp_path), clock=clock)


def always(answer: bool):
    return lambda profile: answer


class TestUniqueName:
    def test_no_collision(self):
        assert unique_name("Alice", ["Bob"]) == "Alice"

    def test_case_insensitive_suffix(self):
        assert unique_name("alice", ["Alice"]) == "alice 2"

    def test_skips_taken_suffixes(self):
        assert unique_name("Alice", ["alice", "Alice 2"]) == "Alice 3"

    def test_suffix_stays_within_length_limit(self):
        name = "x" * 20
        assert unique_name(name, [name]) == "x" * 18 + " 2"
        assert len(unique_name(name, [name, "x" * 18 + " 2"])) == 20


class TestCreateProfile:
    def test_create_sets_active(self, store):
        profile = store.create_profile("Alice", Avatar.FISH)
        assert store.active_profile_id() == profile.id
        assert store.active_profile().name == "Alice"
        assert profile.avatar == Avatar.FISH
        assert profile.id.startswith("profile-")

    def test_duplicate_names_get_suffix(self, store):
        store.create_profile("Alice")
        second = store.create_profile("alice")
        third = store.create_profile("ALICE")
        assert second.name == "alice 2"
        assert third.name == "ALICE 3"

    def test_ids_unique_within_same_millisecond(self, store):
        a = store.create_profile("Alice")
        b = store.create_profile("Bruno")
        assert a.id != b.id

    def test_name_too_short(self, store):
        with pytest.raises(InvalidProfileName):
            store.create_profile("  ab  ")

    def test_name_trimmed_and_truncated(self, store):
        profile = store.create_profile("   " + "x" * 30 + "  ")
        assert profile.name == "x" * 20

    def test_profile_cap(self, store):
        for name in ("Alice", "Bruno", "Chloe"):
            store.create_profile(name)
        with pytest.raises(ProfileLimitReached):
            store.create_profile("Denis")
        assert len(store.list_profiles()) == 3

    def test_list_preserves_insertion_order(self, store, clock):
        ids = []
        for name in ("Chloe", "Alice", "Bruno"):
            ids.append(store.create_profile(name).id)
            clock.advance(seconds=1)
        assert list(store.list_profiles().keys()) == ids


class TestRenameAndAvatar:
    def test_rename_unique_among_others(self, store):
        store.create_profile("Alice")
        bob = store.create_profile("Bruno")
        renamed = store.rename_profile(bob.id, "alice")
        assert renamed.name == "alice 2"

    def test_rename_to_own_name_keeps_it(self, store):
        alice = store.create_profile("Alice")
        assert store.rename_profile(alice.id, "ALICE").name == "ALICE"

    def test_rename_unknown(self, store):
        with pytest.raises(ProfileNotFound):
            store.rename_profile("profile-missing", "Alice")

    def test_update_avatar_stamps_last_modified(self, store, clock):
        alice = store.create_profile("Alice")
        clock.advance(minutes=5)
        updated = store.update_avatar(alice.id, Avatar.ROCKET)
        assert updated.avatar == Avatar.ROCKET
        assert updated.last_modified > alice.last_modified


class TestDelete:
    def test_declined_confirmation_keeps_profile(self, store):
        alice = store.create_profile("Alice")
        assert store.delete(alice.id, always(False)) is False
        assert store.get(alice.id) is not None

    def test_delete_active_switches_to_first_remaining(self, store, clock):
        alice = store.create_profile("Alice")
        clock.advance(seconds=1)
        bruno = store.create_profile("Bruno")
        assert store.active_profile_id() == bruno.id
        assert store.delete(bruno.id, always(True)) is True
        assert store.get(bruno.id) is None
        assert store.active_profile_id() == alice.id

    def test_delete_last_profile_clears_active(self, store):
        alice = store.create_profile("Alice")
        store.delete(alice.id, always(True))
        assert store.active_profile_id() is None
        assert store.active_profile() is None

    def test_delete_inactive_keeps_pointer(self, store, clock):
        alice = store.create_profile("Alice")
        clock.advance(seconds=1)
        bruno = store.create_profile("Bruno")
        store.delete(alice.id, always(True))
        assert store.active_profile_id() == bruno.id

    def test_confirm_receives_profile(self, store):
        alice = store.create_profile("Alice")
        seen = []
        store.delete(alice.id, lambda p: seen.append(p.name) or True)
        assert seen == ["Alice"]


class TestImportProfile:
    def _snapshot(self, profile_id="profile-remote", name="Remote", **stats):
        return Profile(
            id=profile_id,
            name=name,
            created_at=1_000,
            last_modified=2_000,
            stats={k: WordStat(**v) for k, v in stats.items()},
        ).to_json_dict()

    def test_new_profile_adopted(self, store):
        imported = store.import_profile(self._snapshot())
        assert imported.id == "profile-remote"
        assert store.get("profile-remote").name == "Remote"

    def test_new_profile_refused_at_cap(self, store):
        for name in ("Alice", "Bruno", "Chloe"):
            store.create_profile(name)
        with pytest.raises(ProfileLimitReached):
            store.import_profile(self._snapshot())

    def test_existing_profile_merged_at_cap(self, store):
        for name in ("Alice", "Bruno", "Chloe"):
            store.create_profile(name)
        local = next(iter(store.list_profiles().values()))
        local.stats["5"] = WordStat(attempts=5, correct=3, incorrect=2)
        store.upsert(local)

        snapshot = self._snapshot(
            profile_id=local.id,
            name=local.name,
            **{"5": {"attempts": 7, "correct": 3, "incorrect": 3}},
        )
        merged = store.import_profile(snapshot)
        stat = merged.stats["5"]
        assert (stat.attempts, stat.correct, stat.incorrect) == (7, 3, 3)
        assert store.get(local.id).stats["5"].attempts == 7

    def test_legacy_snapshot_is_migrated(self, store):
        legacy = {
            "id": "profile-old",
            "name": "Oldie",
            "stats": {"1": {"attempts": 2, "correct": 1, "incorrect": 1, "category": "food"}},
            "createdAt": 1_000,
            "lastModified": 5_000,
        }
        imported = store.import_profile(legacy)
        assert imported.stats["1"].recent_history
        assert imported.metadata.created_at == 1_000

    def test_imported_name_is_trimmed_and_truncated(self, store):
        imported = store.import_profile(self._snapshot(name="  " + "y" * 30 + " "))
        assert imported.name == "y" * 20
        assert store.get("profile-remote").name == "y" * 20

    def test_imported_name_too_short_is_rejected(self, store):
        with pytest.raises(InvalidProfileName):
            store.import_profile(self._snapshot(name=" ab "))
        assert store.get("profile-remote") is None


class TestSessions:
    def test_start_and_end_session(self, store, clock):
        alice = store.create_profile("Alice")
        session_id = store.start_session(alice.id, "flashcard", "food")
        clock.advance(minutes=3)
        session = store.end_session(alice.id, session_id, items_attempted=4, items_correct=3)

        assert session.duration == 3 * 60 * 1000
        assert session.accuracy == 75
        assert session.is_closed

        profile = store.get(alice.id)
        assert profile.metadata.total_sessions == 1
        assert profile.metadata.total_practice_time == 3 * 60 * 1000
        assert profile.metadata.daily_stats["2026-03-02"].sessions_completed == 1

    def test_closed_session_is_immutable(self, store):
        alice = store.create_profile("Alice")
        session_id = store.start_session(alice.id)
        store.end_session(alice.id, session_id, 1, 1)
        with pytest.raises(SessionClosed):
            store.end_session(alice.id, session_id, 5, 5)
        assert store.get(alice.id).sessions[session_id].items_attempted == 1

    def test_unknown_session(self, store):
        alice = store.create_profile("Alice")
        with pytest.raises(SessionNotFound):
            store.end_session(alice.id, "session-missing", 1, 1)

    def test_empty_session_accuracy_zero(self, store):
        alice = store.create_profile("Alice")
        session_id = store.start_session(alice.id)
        assert store.end_session(alice.id, session_id, 0, 0).accuracy == 0


class TestNavigationAndStorage:
    def test_navigation_state_roundtrip(self, store):
        assert store.navigation_state() == {}
        store.save_navigation_state({"domain": "vocabulaire", "level": "niveau1"})
        assert store.navigation_state() == {"domain": "vocabulaire", "level": "niveau1"}

    def test_corrupted_slot_fails_closed(self, tmp_path, clock):
        (tmp_path / f"{PROFILES_KEY}.json").write_text("{not json")
        store = ProfileStore(JsonFileStore(tmp_path), clock=clock)
        with pytest.raises(StorageError):
            store.list_profiles()
