"""Transfer code request/response and table row models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateTransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Kept as a raw mapping: the snapshot is stored verbatim.
    profile_data: Any = Field(default=None, alias="profileData")


class CreateTransferResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    expires_at: datetime = Field(alias="expiresAt")


class RedeemTransferRequest(BaseModel):
    code: Any = None


class RedeemTransferResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    profile_data: dict[str, Any] = Field(alias="profileData")


class TransferCodeRecord(BaseModel):
    """A row of the hosted ``transfer_codes`` table."""

    id: int | str | None = None
    code: str
    profile_data: dict[str, Any]
    expires_at: datetime
    redeemed_at: datetime | None = None
    created_by_ip: str = "unknown"
