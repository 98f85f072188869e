"""Store-level migration with backup and automatic rollback."""

import random
from datetime import datetime

import structlog
from pydantic import BaseModel

from french_quiz.errors import StorageError
from french_quiz.migration.steps import migrate_profile, needs_migration
from french_quiz.models.profile import CURRENT_VERSION, Profile
from french_quiz.progress.dates import from_epoch_ms, to_epoch_ms
from french_quiz.storage.kv import JsonFileStore
from french_quiz.storage.profiles import BACKUP_PREFIX, PROFILES_KEY

logger = structlog.get_logger()


class MigrationReport(BaseModel):
    """Outcome of a migration run."""

    success: bool
    migrated_count: int = 0
    backup_key: str | None = None
    restored_from_backup: bool = False
    error: str | None = None


class BackupResult(BaseModel):
    success: bool
    backup_key: str | None = None
    error: str | None = None


class BackupInfo(BaseModel):
    key: str
    timestamp: int
    created_at: datetime


def migrate_all_profiles(
    kv: JsonFileStore,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> MigrationReport:
    """Upgrade every stored profile in place.

    Every result is validated before anything is written; an invalid
    profile aborts the whole run.
    """
    try:
        profiles = kv.get(PROFILES_KEY)
        if not profiles:
            logger.info("migration_no_profiles")
            return MigrationReport(success=True)

        migrated_count = 0
        migrated = {}
        for profile_id, profile in profiles.items():
            if needs_migration(profile):
                migrated[profile_id] = migrate_profile(profile, rng=rng, now=now)
                migrated_count += 1
                logger.info(
                    "profile_migrated",
                    profile_id=profile_id,
                    name=profile.get("name"),
                )
            else:
                migrated[profile_id] = {**profile, "version": CURRENT_VERSION}
            Profile.model_validate(migrated[profile_id])

        kv.set(PROFILES_KEY, migrated)
    except Exception as e:
        logger.error("migration_failed", error=str(e))
        return MigrationReport(success=False, error=str(e))

    logger.info("migration_complete", migrated_count=migrated_count)
    return MigrationReport(success=True, migrated_count=migrated_count)


def backup_profiles(kv: JsonFileStore, now: datetime | None = None) -> BackupResult:
    """Copy the profile map verbatim under a timestamped backup key."""
    try:
        raw = kv.get_raw(PROFILES_KEY)
        if raw is None:
            return BackupResult(success=False, error="No profiles to backup")

        stamp = to_epoch_ms(now or datetime.now())
        existing = set(kv.keys(BACKUP_PREFIX))
        while f"{BACKUP_PREFIX}{stamp}" in existing:
            stamp += 1
        backup_key = f"{BACKUP_PREFIX}{stamp}"
        kv.set_raw(backup_key, raw)
    except (OSError, StorageError) as e:
        logger.error("backup_failed", error=str(e))
        return BackupResult(success=False, error=str(e))

    logger.info("backup_created", backup_key=backup_key)
    return BackupResult(success=True, backup_key=backup_key)


def restore_from_backup(kv: JsonFileStore, backup_key: str) -> BackupResult:
    try:
        raw = kv.get_raw(backup_key)
        if raw is None:
            return BackupResult(success=False, error="Backup not found")
        kv.set_raw(PROFILES_KEY, raw)
    except (OSError, StorageError) as e:
        logger.error("restore_failed", backup_key=backup_key, error=str(e))
        return BackupResult(success=False, backup_key=backup_key, error=str(e))

    logger.info("backup_restored", backup_key=backup_key)
    return BackupResult(success=True, backup_key=backup_key)


def list_backups(kv: JsonFileStore) -> list[BackupInfo]:
    """Available backups, newest first."""
    backups = []
    for key in kv.keys(BACKUP_PREFIX):
        try:
            timestamp = int(key.removeprefix(BACKUP_PREFIX))
        except ValueError:
            continue
        backups.append(
            BackupInfo(key=key, timestamp=timestamp, created_at=from_epoch_ms(timestamp))
        )
    return sorted(backups, key=lambda b: b.timestamp, reverse=True)


def safe_migration(
    kv: JsonFileStore,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> MigrationReport:
    """Back up, migrate, and roll back verbatim if the migration fails."""
    try:
        profiles = kv.get(PROFILES_KEY) or {}
    except StorageError as e:
        return MigrationReport(success=False, error=str(e))
    if not isinstance(profiles, dict):
        logger.error("migration_skipped_bad_profile_map", kind=type(profiles).__name__)
        return MigrationReport(success=False, error="Stored profile map is not an object")

    if not any(needs_migration(p) for p in profiles.values()):
        return MigrationReport(success=True)

    backup = backup_profiles(kv, now=now)
    if not backup.success:
        logger.error("migration_aborted_without_backup", error=backup.error)
        return MigrationReport(success=False, error=f"Backup failed: {backup.error}")

    migration = migrate_all_profiles(kv, rng=rng, now=now)
    if migration.success:
        return migration.model_copy(update={"backup_key": backup.backup_key})

    logger.warning("migration_rolling_back", backup_key=backup.backup_key)
    restore_from_backup(kv, backup.backup_key)
    return MigrationReport(
        success=False,
        backup_key=backup.backup_key,
        restored_from_backup=True,
        error=migration.error,
    )
