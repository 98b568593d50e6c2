from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ledger_indexer.app.domain.errors import LedgerFetchError
from ledger_indexer.app.domain.models import LedgerTransaction
from ledger_indexer.app.domain.ports.out import LedgerTransactionsFetcher

logger = logging.getLogger(__name__)


class HorizonTransactionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hash: str
    successful: bool = False
    ledger: int
    result_meta_xdr: str | None = None
    created_at: datetime | None = None

    def to_domain(self) -> LedgerTransaction:
        return LedgerTransaction(
            hash=self.hash,
            ledger=self.ledger,
            successful=self.successful,
            result_meta_xdr=self.result_meta_xdr,
            created_at=self.created_at,
        )


class HorizonTransactionsFetcher(LedgerTransactionsFetcher):
    """
    Reads transaction history from a Horizon-style ledger indexer.

    Two paths describe the same logical history:
      1) /contracts/{addr}/transactions  (primary)
      2) /accounts/{addr}/transactions   (tried only when (1) answers 404)

    Any other non-success status is a LedgerFetchError for this cycle.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        limit: int = 200,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._limit = limit

    async def fetch_transactions_since(
        self,
        *,
        address: str,
        cursor: int,
    ) -> list[LedgerTransaction]:
        params: dict[str, str] = {"order": "asc", "limit": str(self._limit)}
        if cursor > 0:
            params["cursor"] = str(cursor)

        encoded = quote(address, safe="")
        candidate_paths = (
            f"/contracts/{encoded}/transactions",
            f"/accounts/{encoded}/transactions",
        )

        for path in candidate_paths:
            url = f"{self._base_url}{path}"
            try:
                response = await self._client.get(
                    url,
                    params=params,
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as exc:
                raise LedgerFetchError(f"Horizon request to {url} failed: {exc}") from exc

            if response.status_code == 404:
                logger.debug("Horizon path %s answered 404, trying next path", path)
                continue

            if not response.is_success:
                raise LedgerFetchError(
                    f"Horizon request failed with status {response.status_code}",
                    status_code=response.status_code,
                )

            return self._parse_records(response.json())

        return []

    @staticmethod
    def _parse_records(body: Any) -> list[LedgerTransaction]:
        if not isinstance(body, dict):
            return []
        records = (body.get("_embedded") or {}).get("records") or []

        out: list[LedgerTransaction] = []
        for raw in records:
            try:
                record = HorizonTransactionRecord.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed Horizon record: %s", exc.errors()[:1])
                continue
            if not record.hash or record.ledger <= 0:
                logger.warning("Skipping Horizon record without hash/ledger")
                continue
            out.append(record.to_domain())
        return out
