from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .listener.contract_events_task import poll_contract_events_once_task as listener__poll_contract_events_once_task
from .listener.contract_events_task import run_event_listener_task as listener__run_event_listener_task
from .maintenance.maintenance_task import run_maintenance_job_task as maintenance__run_maintenance_job_task
from .maintenance.maintenance_task import run_maintenance_scheduler_task as maintenance__run_maintenance_scheduler_task
from .queue.event_sync_task import enqueue_event_sync_job_task as queue__enqueue_event_sync_job_task
from .queue.event_sync_task import run_event_sync_worker_task as queue__run_event_sync_worker_task

TaskFn = Callable[..., Awaitable[Any]]

TASKS: dict[str, TaskFn] = {
    "listener__poll_contract_events_once_task": listener__poll_contract_events_once_task,
    "listener__run_event_listener_task": listener__run_event_listener_task,
    "maintenance__run_maintenance_job_task": maintenance__run_maintenance_job_task,
    "maintenance__run_maintenance_scheduler_task": maintenance__run_maintenance_scheduler_task,
    "queue__run_event_sync_worker_task": queue__run_event_sync_worker_task,
    "queue__enqueue_event_sync_job_task": queue__enqueue_event_sync_job_task,
}
