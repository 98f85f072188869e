"""Server side of the transfer-code flow: create and redeem."""

import random
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

import structlog

from french_quiz.errors import (
    AlreadyUsed,
    Expired,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from french_quiz.models.transfer import CreateTransferResponse, TransferCodeRecord
from french_quiz.transfer.codes import MIN_CODE_LENGTH, generate_transfer_code, normalize_code
from french_quiz.transfer.datastore import TransferCodeTable

logger = structlog.get_logger()


class SoftWriteOutcome(StrEnum):
    """Result of a write whose failure must not fail the caller."""

    OK = "ok"
    LOGGED_FAILURE = "logged_failure"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransferService:
    """Creates single-use, time-boxed transfer codes and redeems them.

    Args:
        table: Hosted transfer code table.
        ttl: How long a code stays redeemable.
        clock: Returns the current time as an aware UTC datetime.
        rng: Random source for code generation.
    """

    def __init__(
        self,
        table: TransferCodeTable,
        ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = _utc_now,
        rng: random.Random | None = None,
    ):
        self.table = table
        self.ttl = ttl
        self.clock = clock
        self.rng = rng

    async def create(
        self, profile_data: Any, client_ip: str = "unknown"
    ) -> CreateTransferResponse:
        """Store a profile snapshot under a fresh code.

        Codes are not checked against live codes for collisions.

        Raises:
            ValidationError: The snapshot lacks a non-empty ``id`` or ``name``.
            UpstreamFailure: The datastore rejected the insert.
        """
        if (
            not isinstance(profile_data, dict)
            or not profile_data.get("id")
            or not profile_data.get("name")
        ):
            raise ValidationError("Invalid profile data")

        now = self.clock()
        snapshot = {**profile_data, "lastModified": int(now.timestamp() * 1000)}
        code = generate_transfer_code(self.rng)
        expires_at = now + self.ttl

        await self.table.insert(
            TransferCodeRecord(
                code=code,
                profile_data=snapshot,
                expires_at=expires_at,
                created_by_ip=client_ip,
            )
        )
        logger.info(
            "transfer_code_created",
            profile_id=profile_data["id"],
            expires_at=expires_at.isoformat(),
            client_ip=client_ip,
        )
        return CreateTransferResponse(code=code, expires_at=expires_at)

    async def redeem(self, code: Any) -> dict[str, Any]:
        """Return the snapshot stored under ``code`` and mark it used.

        Raises:
            ValidationError: Malformed code.
            NotFound: No row for the code.
            AlreadyUsed: The code was redeemed before.
            Expired: The code's expiry has passed.
            UpstreamFailure: The lookup failed.
        """
        if not isinstance(code, str) or len(normalize_code(code)) < MIN_CODE_LENGTH:
            raise ValidationError("Invalid code format")
        clean_code = normalize_code(code)

        record = await self.table.fetch_by_code(clean_code)
        if record is None:
            raise NotFound()
        if record.redeemed_at is not None:
            raise AlreadyUsed()

        now = self.clock()
        expires_at = record.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < now:
            raise Expired()

        outcome = await self.mark_redeemed(record, now)
        logger.info(
            "transfer_code_redeemed",
            profile_id=record.profile_data.get("id"),
            mark_outcome=outcome.value,
        )
        return record.profile_data

    async def mark_redeemed(
        self, record: TransferCodeRecord, now: datetime
    ) -> SoftWriteOutcome:
        """Best-effort stamp of ``redeemed_at``.

        A failure is logged and reported as ``LOGGED_FAILURE``; the caller
        still gets the profile data. Two redeemers racing inside the same
        window can therefore both succeed.
        """
        if record.id is None:
            logger.error("mark_redeemed_failed", code=record.code, error="row has no id")
            return SoftWriteOutcome.LOGGED_FAILURE
        try:
            await self.table.mark_redeemed(record.id, now)
        except UpstreamFailure as e:
            logger.error("mark_redeemed_failed", code=record.code, error=str(e))
            return SoftWriteOutcome.LOGGED_FAILURE
        return SoftWriteOutcome.OK
