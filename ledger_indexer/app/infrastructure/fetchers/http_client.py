from __future__ import annotations

import httpx

from ledger_indexer.app.config import settings


def create_horizon_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.horizon_timeout_seconds),
        headers={"Accept": "application/json"},
    )
