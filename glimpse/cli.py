"""Glimpse CLI - serve the API and work with guest tasks from a terminal."""

import asyncio
import json
import logging
from datetime import date, timedelta
from contextlib import asynccontextmanager
from typing import Any

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from .client.api import TaskApiClient
from .client.auth_state import AuthState
from .client.data_service import LocalBackend, RemoteBackend, TaskDataService
from .client.local_store import LocalTaskStore
from .client.sync import SyncService
from .config import settings
from .errors import GlimpseError

app = typer.Typer(
    name="glimpse",
    help="Weekly Glimpse - weekly task planner",
    no_args_is_help=True,
)
tasks_app = typer.Typer(help="Task management")
app.add_typer(tasks_app, name="tasks")
console = Console()


@asynccontextmanager
async def _services(api_url: str | None = None):
    """Local store, API client, auth state, data service and sync engine, wired up."""
    async with LocalTaskStore(settings.local_store_url) as store:
        async with TaskApiClient(api_url or settings.api_base_url) as api:
            auth = AuthState()
            sync = SyncService(store, api, window_months=settings.sync_window_months)
            sync.attach(auth)
            data = TaskDataService(LocalBackend(store), RemoteBackend(api), auth)
            yield data, api, auth


async def _sign_in(api: TaskApiClient, auth: AuthState, username: str, password: str) -> None:
    user = await api.login(username, password)
    await auth.login(user)


def _print_tasks(tasks: list[dict[str, Any]], json_output: bool) -> None:
    if json_output:
        console.print_json(json.dumps(tasks, default=str))
        return
    table = Table(title=f"Tasks ({len(tasks)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Due", style="yellow")
    table.add_column("Priority")
    table.add_column("Done")
    for task in tasks:
        table.add_row(
            str(task.get("id")),
            task.get("title") or "",
            str(task.get("dueDate") or "-"),
            task.get("priority") or "",
            "yes" if task.get("completed") else "",
        )
    console.print(table)


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except GlimpseError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)


@app.command("serve")
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the task API server."""
    console.print(f"[bold cyan]Starting Weekly Glimpse at http://{host}:{port}[/bold cyan]")
    uvicorn.run("glimpse.main:app", host=host, port=port, reload=reload)


@tasks_app.command("list")
def tasks_list(
    start: str = typer.Option("", "--start", help="Week start (ISO date)"),
    end: str = typer.Option("", "--end", help="Week end (ISO date)"),
    username: str = typer.Option("", "--username", "-u", help="Sign in and list server tasks"),
    password: str = typer.Option("", "--password", help="Password for --username"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List tasks (guest tasks unless signed in)."""

    async def _list():
        async with _services() as (data, api, auth):
            if username:
                await _sign_in(api, auth, username, password)
            week_start = start or (date.today() - timedelta(days=date.today().weekday())).isoformat()
            week_end = end or (date.fromisoformat(week_start[:10]) + timedelta(days=7)).isoformat()
            return await data.get_week_tasks(week_start, week_end)

    _print_tasks(_run(_list()), json_output)


@tasks_app.command("add")
def tasks_add(
    title: str = typer.Argument(..., help="Task title"),
    due: str = typer.Option("", "--due", "-d", help="Due date/time (ISO)"),
    priority: str = typer.Option("medium", "--priority", "-p", help="low, medium or high"),
    description: str = typer.Option("", "--description", help="Task description"),
):
    """Add a guest task to the local store."""

    async def _add():
        async with _services() as (data, _api, _auth):
            return await data.create_task({
                "title": title,
                "description": description or None,
                "dueDate": due or None,
                "priority": priority,
                "completed": False,
            })

    task = _run(_add())
    console.print(f"[green]Added task {task['id']}:[/green] {task['title']}")


@tasks_app.command("done")
def tasks_done(task_id: int = typer.Argument(..., help="Local task ID")):
    """Mark a guest task completed."""

    async def _done():
        async with _services() as (data, _api, _auth):
            await data.update_task({"id": task_id, "completed": True})

    _run(_done())
    console.print(f"[green]Task {task_id} marked done[/green]")


@tasks_app.command("delete")
def tasks_delete(task_id: int = typer.Argument(..., help="Local task ID")):
    """Delete a guest task."""

    async def _delete():
        async with _services() as (data, _api, _auth):
            await data.delete_task(task_id)

    _run(_delete())
    console.print(f"[green]Task {task_id} deleted[/green]")


@app.command("sync")
def sync(
    username: str = typer.Option(..., "--username", "-u", help="Account username"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    api_url: str = typer.Option("", "--api-url", help="Server base URL"),
):
    """Sign in and move guest tasks to the server."""
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    async def _sync():
        async with _services(api_url or None) as (_data, api, auth):
            await _sign_in(api, auth, username, password)

    _run(_sync())
    console.print("[green]Sync complete[/green]")


if __name__ == "__main__":
    app()
