"""Device startup: migrate stored profiles once, then hand out the store."""

import random
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import structlog

from french_quiz.config import get_settings
from french_quiz.migration.engine import MigrationReport, safe_migration
from french_quiz.progress.recorder import AttemptRecorder
from french_quiz.storage.kv import JsonFileStore
from french_quiz.storage.profiles import ProfileStore

logger = structlog.get_logger()


class Device:
    """Local storage scope of one device, ready for profile-dependent views."""

    def __init__(
        self,
        kv: JsonFileStore,
        profiles: ProfileStore,
        recorder: AttemptRecorder,
        migration: MigrationReport,
    ):
        self.kv = kv
        self.profiles = profiles
        self.recorder = recorder
        self.migration = migration


def open_device(
    data_dir: Path | None = None,
    clock: Callable[[], datetime] = datetime.now,
    rng: random.Random | None = None,
) -> Device:
    """Run the startup migration and build the device's store and recorder.

    A failed migration has already been rolled back by the time this
    returns; startup continues with the un-migrated data.
    Without ``data_dir`` the configured device data directory is used.
    """
    kv = JsonFileStore(data_dir or get_settings().data_dir)
    report = safe_migration(kv, rng=rng, now=clock())
    if report.success:
        logger.info("startup_migration_done", migrated_count=report.migrated_count)
    else:
        logger.error(
            "startup_migration_failed",
            error=report.error,
            restored_from_backup=report.restored_from_backup,
        )
    profiles = ProfileStore(kv, clock=clock)
    return Device(
        kv=kv,
        profiles=profiles,
        recorder=AttemptRecorder(profiles),
        migration=report,
    )
