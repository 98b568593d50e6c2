import asyncio
import inspect
import json
import logging

import typer
import uvicorn
from dotenv import load_dotenv
from InquirerPy import inquirer

from ledger_indexer.app.config import settings
from ledger_indexer.app.infrastructure.factories.maintenance_scheduler_factory import (
    ARCHIVE_AUDIT_LOGS,
    SEND_CONTRIBUTION_SUMMARIES,
    UPDATE_GROUP_STATUSES,
)
from ledger_indexer.app.infrastructure.queue.jobs import EVENT_SYNC_JOB_NAMES
from ledger_indexer.app.interface.tasks import TASKS


load_dotenv()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
indexer_app = typer.Typer(help="cli for ingesting on-chain contract events.")
app.add_typer(indexer_app, name="indexer")

_MAINTENANCE_JOBS = [ARCHIVE_AUDIT_LOGS, UPDATE_GROUP_STATUSES, SEND_CONTRIBUTION_SUMMARIES]


@indexer_app.command("run")
def run() -> None:
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]

    kwargs: dict[str, object] = {}

    sig = inspect.signature(task)
    params = sig.parameters

    if "job_name" in params:
        choices = _MAINTENANCE_JOBS if task_name.startswith("maintenance__") else list(EVENT_SYNC_JOB_NAMES)
        kwargs["job_name"] = inquirer.select(
            message="Job:",
            choices=choices,
            pointer="❯",
        ).execute()

    if "data" in params:
        raw = inquirer.text(
            message="Job data (JSON object):",
            default="{}",
            validate=_is_json_object,
            invalid_message="Must be a JSON object",
        ).execute()
        kwargs["data"] = raw

    result = asyncio.run(task(**kwargs))  # type: ignore
    if result is not None:
        typer.echo(result)


@indexer_app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    """Run the admin API together with the listener, scheduler and queue worker."""
    uvicorn.run(
        "ledger_indexer.app.interface.api.server:build_app",
        factory=True,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


def _is_json_object(raw: str) -> bool:
    try:
        return isinstance(json.loads(raw), dict)
    except ValueError:
        return False


if __name__ == "__main__":
    LOGO = r"""
     _              _                  _           _
    | |    ___  __| | __ _  ___ _ __  (_)_ __   __| | _____  _____ _ __
    | |   / _ \/ _` |/ _` |/ _ \ '__| | | '_ \ / _` |/ _ \ \/ / _ \ '__|
    | |__|  __/ (_| | (_| |  __/ |    | | | | | (_| |  __/>  <  __/ |
    |_____\___|\__,_|\__, |\___|_|    |_|_| |_|\__,_|\___/_/\_\___|_|
                     |___/

      --- Ledger Indexer CLI ---
    """
    typer.echo(LOGO)
    app()
