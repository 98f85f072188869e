"""Device side of the transfer flow."""

from typing import Any

import httpx
import structlog

from french_quiz.errors import TransferClientError
from french_quiz.models.profile import Profile
from french_quiz.storage.profiles import ProfileStore
from french_quiz.transfer.codes import MIN_CODE_LENGTH, normalize_code

logger = structlog.get_logger()


class TransferClient:
    """Calls the transfer endpoints. No retries: failures surface to the user.

    Args:
        base_url: Where the API is served.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, e.g. an ASGI transport in tests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict, fallback_error: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.warning("transfer_request_failed", path=path, error=str(e))
            raise TransferClientError(fallback_error) from e

        if response.is_error:
            try:
                message = response.json().get("error") or fallback_error
            except ValueError:
                message = fallback_error
            raise TransferClientError(message, status_code=response.status_code)
        return response.json()

    async def create_transfer_code(self, profile: Profile | dict[str, Any]) -> dict[str, Any]:
        """Upload a profile snapshot; returns ``{"code", "expiresAt"}``."""
        if isinstance(profile, Profile):
            profile = profile.to_json_dict()
        return await self._post(
            "/api/transfer/create",
            {"profileData": profile},
            "Failed to create transfer code",
        )

    async def redeem_transfer_code(self, code: str) -> dict[str, Any]:
        """Fetch the snapshot stored under ``code``."""
        clean_code = normalize_code(code or "")
        if len(clean_code) < MIN_CODE_LENGTH:
            raise TransferClientError("Invalid code format")
        data = await self._post(
            "/api/transfer/redeem",
            {"code": clean_code},
            "Failed to redeem code",
        )
        return data["profileData"]


async def import_from_code(
    client: TransferClient, store: ProfileStore, code: str
) -> Profile:
    """Redeem ``code`` and merge or adopt the profile on this device.

    Raises:
        TransferClientError: The redeem call failed.
        ProfileLimitReached: The profile is new and the device is full.
    """
    snapshot = await client.redeem_transfer_code(code)
    return store.import_profile(snapshot)
