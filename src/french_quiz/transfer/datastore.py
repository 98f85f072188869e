"""REST client for the hosted ``transfer_codes`` table."""

from datetime import datetime

import httpx
import structlog

from french_quiz.errors import UpstreamFailure
from french_quiz.models.transfer import TransferCodeRecord

logger = structlog.get_logger()

TABLE_PATH = "/rest/v1/transfer_codes"


class TransferCodeTable:
    """Access to the transfer code table over its REST interface.

    Inserts use the elevated service key (bypasses row-level security);
    reads and the redeemed-at patch use the restricted anon key.

    Args:
        base_url: Datastore project URL.
        service_key: Elevated credential.
        anon_key: Restricted credential.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        anon_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    @staticmethod
    def _headers(key: str) -> dict:
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        headers = {**self._headers(key), **kwargs.pop("headers", {})}
        try:
            async with self._client() as client:
                response = await client.request(method, TABLE_PATH, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("datastore_unreachable", method=method, error=str(e))
            raise UpstreamFailure() from e
        if response.is_error:
            logger.error(
                "datastore_rejected",
                method=method,
                status=response.status_code,
                body=response.text,
            )
            raise UpstreamFailure()
        return response

    async def insert(self, record: TransferCodeRecord) -> None:
        body = record.model_dump(mode="json", exclude={"id", "redeemed_at"})
        await self._request(
            "POST",
            self.service_key,
            json=body,
            headers={"Prefer": "return=representation"},
        )

    async def fetch_by_code(self, code: str) -> TransferCodeRecord | None:
        response = await self._request(
            "GET",
            self.anon_key,
            params={"code": f"eq.{code}", "select": "*"},
        )
        rows = response.json()
        if not rows:
            return None
        return TransferCodeRecord.model_validate(rows[0])

    async def mark_redeemed(self, row_id: int | str, redeemed_at: datetime) -> None:
        await self._request(
            "PATCH",
            self.anon_key,
            params={"id": f"eq.{row_id}"},
            json={"redeemed_at": redeemed_at.isoformat()},
        )
