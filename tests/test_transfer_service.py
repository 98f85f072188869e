"""Tests for transfer code creation and redemption."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from french_quiz.errors import (
    AlreadyUsed,
    Expired,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from french_quiz.models.transfer import TransferCodeRecord
from french_quiz.transfer.service import SoftWriteOutcome, TransferService


class FakeTable:
    """In-memory stand-in for the hosted transfer code table."""

    def __init__(self):
        self.rows: dict[int, TransferCodeRecord] = {}
        self.fail_insert = False
        self.fail_mark = False

    async def insert(self, record: TransferCodeRecord) -> None:
        if self.fail_insert:
            raise UpstreamFailure()
        row_id = len(self.rows) + 1
        self.rows[row_id] = record.model_copy(update={"id": row_id})

    async def fetch_by_code(self, code: str) -> TransferCodeRecord | None:
        for record in self.rows.values():
            if record.code == code:
                return record
        return None

    async def mark_redeemed(self, row_id, redeemed_at: datetime) -> None:
        if self.fail_mark:
            raise UpstreamFailure()
        self.rows[row_id] = self.rows[row_id].model_copy(update={"redeemed_at": redeemed_at})


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


PROFILE = {
    "id": "profile-1",
    "name": "Alice",
    "avatar": "fish",
    "stats": {"5": {"attempts": 5, "correct": 3, "incorrect": 2}},
    "lastModified": 1,
}


@pytest.fixture
def table():
    return FakeTable()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(table, clock):
    return TransferService(table, ttl=timedelta(minutes=15), clock=clock, rng=random.Random(4))


class TestCreate:
    async def test_create_stores_snapshot(self, service, table, clock):
        response = await service.create(PROFILE, client_ip="10.0.0.1")
        assert response.expires_at == clock.now + timedelta(minutes=15)

        record = table.rows[1]
        assert record.code == response.code
        assert record.created_by_ip == "10.0.0.1"
        assert record.redeemed_at is None
        assert record.profile_data["lastModified"] == int(clock.now.timestamp() * 1000)

    async def test_create_does_not_mutate_input(self, service):
        data = dict(PROFILE)
        await service.create(data)
        assert data["lastModified"] == 1

    @pytest.mark.parametrize(
        "payload",
        [None, "profile", {}, {"id": "profile-1"}, {"name": "Alice"}, {"id": "", "name": "Alice"}],
    )
    async def test_invalid_profile_data(self, service, table, payload):
        with pytest.raises(ValidationError) as exc_info:
            await service.create(payload)
        assert exc_info.value.message == "Invalid profile data"
        assert exc_info.value.status_code == 400
        assert table.rows == {}

    async def test_datastore_failure(self, service, table):
        table.fail_insert = True
        with pytest.raises(UpstreamFailure):
            await service.create(PROFILE)


class TestRedeem:
    async def test_round_trip(self, service):
        created = await service.create(PROFILE)
        data = await service.redeem(created.code)
        assert {k: v for k, v in data.items() if k != "lastModified"} == {
            k: v for k, v in PROFILE.items() if k != "lastModified"
        }

    async def test_second_redeem_already_used(self, service):
        created = await service.create(PROFILE)
        await service.redeem(created.code)
        with pytest.raises(AlreadyUsed) as exc_info:
            await service.redeem(created.code)
        assert exc_info.value.message == "Code already used"

    async def test_expired_after_ttl(self, service, clock):
        created = await service.create(PROFILE)
        clock.now += timedelta(minutes=16)
        with pytest.raises(Expired) as exc_info:
            await service.redeem(created.code)
        assert exc_info.value.message == "Code expired"

    async def test_valid_just_before_expiry(self, service, clock):
        created = await service.create(PROFILE)
        clock.now += timedelta(minutes=14, seconds=59)
        assert (await service.redeem(created.code))["id"] == "profile-1"

    async def test_unknown_code(self, service):
        with pytest.raises(NotFound) as exc_info:
            await service.redeem("NOPE-NOPE-NOPE-0000")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Code not found"

    @pytest.mark.parametrize("code", [None, 12345678901, "", "   short  "])
    async def test_invalid_code_format(self, service, code):
        with pytest.raises(ValidationError) as exc_info:
            await service.redeem(code)
        assert exc_info.value.message == "Invalid code format"

    async def test_code_normalized(self, service):
        created = await service.create(PROFILE)
        data = await service.redeem(f"  {created.code.lower()} ")
        assert data["name"] == "Alice"

    async def test_mark_failure_still_returns_profile(self, service, table):
        created = await service.create(PROFILE)
        table.fail_mark = True
        data = await service.redeem(created.code)
        assert data["id"] == "profile-1"
        assert table.rows[1].redeemed_at is None

    async def test_naive_expiry_treated_as_utc(self, service, table, clock):
        table.rows[1] = TransferCodeRecord(
            id=1,
            code="TREE-FISH-MOON-AB23",
            profile_data=PROFILE,
            expires_at=(clock.now - timedelta(minutes=1)).replace(tzinfo=None),
        )
        with pytest.raises(Expired):
            await service.redeem("TREE-FISH-MOON-AB23")


class TestMarkRedeemed:
    async def test_missing_row_id(self, service, clock):
        record = TransferCodeRecord(
            code="TREE-FISH-MOON-AB23", profile_data=PROFILE, expires_at=clock.now
        )
        assert await service.mark_redeemed(record, clock.now) == SoftWriteOutcome.LOGGED_FAILURE

    async def test_success(self, service, table, clock):
        await service.create(PROFILE)
        outcome = await service.mark_redeemed(table.rows[1], clock.now)
        assert outcome == SoftWriteOutcome.OK
        assert table.rows[1].redeemed_at == clock.now
