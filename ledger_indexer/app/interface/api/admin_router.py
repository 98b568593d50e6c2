from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from ledger_indexer.app.application.services.event_poller import ContractEventPoller

router = APIRouter(prefix="/v1/admin/event-listener", tags=["event-listener"])


class EventListenerStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    running: bool
    poll_interval_ms: int = Field(alias="pollIntervalMs")


def _poller(request: Request) -> ContractEventPoller:
    return request.app.state.poller


@router.post("/start", response_model=EventListenerStatus)
async def start_listener(request: Request) -> EventListenerStatus:
    return EventListenerStatus.model_validate(_poller(request).start())


@router.post("/stop", response_model=EventListenerStatus)
async def stop_listener(request: Request) -> EventListenerStatus:
    return EventListenerStatus.model_validate(_poller(request).stop())


@router.get("/status", response_model=EventListenerStatus)
async def listener_status(request: Request) -> EventListenerStatus:
    return EventListenerStatus.model_validate(_poller(request).status())
