"""CLI runner for the Suno relay.

Usage:
    python -m suno_relay.runner --user alice generate --prompt "lofi rain"
    python -m suno_relay.runner --user alice check TASK_ID
    python -m suno_relay.runner --user alice history
    python -m suno_relay.runner --user alice import TASK_ID
    python -m suno_relay.runner --user alice refresh
    python -m suno_relay.runner --user alice delete TASK_ID
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

import click
from rich.console import Console
from rich.table import Table

from suno_relay.client import FailoverClient, RelayError
from suno_relay.config import RelaySettings, load_settings
from suno_relay.history import JsonHistoryStore
from suno_relay.models import CheckResult, GenerationJob, TaskRecord
from suno_relay.service import RelayService

console = Console()

_DEFAULT_CONFIG = "config.yaml"

_STATUS_STYLES = {
    "completed": "[green]DONE[/green]",
    "succeeded": "[green]DONE[/green]",
    "failed": "[red]FAILED[/red]",
    "submitted": "[yellow]SUBMITTED[/yellow]",
}


def _setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _run(ctx: click.Context, action: Callable[[RelayService], Awaitable[Any]]) -> Any:
    """Build a service from the CLI context, run ``action`` with it, map errors to exit codes."""
    settings: RelaySettings = ctx.obj["settings"]

    async def _go() -> Any:
        async with FailoverClient(
            default_key=settings.default_key,
            base_url=settings.base_url,
            timeout=settings.timeout,
        ) as client:
            store = JsonHistoryStore(settings.data_dir, scoped=settings.scoped)
            return await action(RelayService(client, store, settings))

    try:
        return asyncio.run(_go())
    except RelayError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"[red]Invalid request: {exc}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted. Tasks checked so far are saved.[/yellow]")
        sys.exit(130)


def _print_result(result: CheckResult) -> None:
    console.print(f"Task [cyan]{result.task_id}[/cyan]: {_STATUS_STYLES.get(result.state.value, result.state.value)}")
    if result.error:
        console.print(f"  [red]{result.error}[/red]")
    for clip in result.clips:
        duration = f" ({clip.duration:.0f}s)" if isinstance(clip.duration, (int, float)) else ""
        console.print(f"  #{clip.index} {clip.title or clip.id}{duration}: {clip.audio_url}")


def _print_history(records: list[TaskRecord]) -> None:
    if not records:
        console.print("[yellow]History is empty.[/yellow]")
        return

    table = Table(title="History", show_lines=True)
    table.add_column("Task ID", style="cyan", max_width=20)
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Status", justify="center")
    table.add_column("Clips", justify="center")
    table.add_column("Created")

    for record in records:
        status_str = _STATUS_STYLES.get(record.status, f"[dim]{record.status.upper()}[/dim]")
        if record.error_msg:
            status_str += f"\n[dim]{record.error_msg}[/dim]"
        table.add_row(
            record.task_id[:20],
            record.title,
            record.type,
            status_str,
            str(len(record.clips)),
            record.created_at[:19],
        )
    console.print(table)


@click.group()
@click.option("--config", "-c", default=_DEFAULT_CONFIG, help="Path to config.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--user", "-u", default=None, help="User id that scopes the history")
@click.option("--keys", "-k", default=None, envvar="SUNO_RELAY_KEYS",
              help="Comma or newline separated API keys, tried in order")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool, user: str | None, keys: str | None) -> None:
    """KIE.ai Suno relay with API key failover."""
    ctx.ensure_object(dict)
    _setup_logging(verbose)
    try:
        ctx.obj["settings"] = load_settings(config)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    ctx.obj["user"] = user
    ctx.obj["keys"] = keys


@cli.command("generate")
@click.option("--prompt", "-p", default="", help="Description, or lyrics in custom mode")
@click.option("--mode", type=click.Choice(["simple", "custom"]), default="simple")
@click.option("--task-type", default="generate_music", help="generate_music or cover_music")
@click.option("--title", default="")
@click.option("--tags", default="", help="Style tags (custom mode)")
@click.option("--ref-url", default=None, help="Reference audio URL for cover jobs")
@click.option("--model", default=None)
@click.option("--instrumental", is_flag=True)
@click.option("--vocal-gender", type=click.Choice(["any", "male", "female"]), default="any")
@click.option("--style-weight", default=None, help="Style influence, 0..1")
@click.option("--weirdness", default=None, help="Weirdness constraint, 0..1")
@click.option("--negative-tags", default=None)
@click.option("--audio-weight", default=None)
@click.option("--persona-id", default=None)
@click.pass_context
def cmd_generate(
    ctx: click.Context,
    prompt: str,
    mode: str,
    task_type: str,
    title: str,
    tags: str,
    ref_url: str | None,
    model: str | None,
    instrumental: bool,
    vocal_gender: str,
    style_weight: str | None,
    weirdness: str | None,
    negative_tags: str | None,
    audio_weight: str | None,
    persona_id: str | None,
) -> None:
    """Submit a new generation job."""
    job = GenerationJob(
        prompt=prompt,
        mode=mode,
        task_type=task_type,
        title=title,
        tags=tags,
        ref_url=ref_url,
        options={
            "model": model,
            "instrumental": instrumental,
            "vocal_gender": vocal_gender,
            "style_influence": style_weight,
            "weirdness": weirdness,
            "negative_tags": negative_tags,
            "audio_weight": audio_weight,
            "persona_id": persona_id,
        },
    )
    submission = _run(ctx, lambda svc: svc.generate(job, ctx.obj["user"], ctx.obj["keys"]))
    if submission.accepted:
        console.print(f"[green]Submitted task {submission.task_id}[/green]")
    else:
        console.print(f"[red]Rejected (code={submission.code}): {submission.msg}[/red]")
        sys.exit(1)


@cli.command("check")
@click.argument("task_id")
@click.pass_context
def cmd_check(ctx: click.Context, task_id: str) -> None:
    """Check a task and save the outcome to history."""
    outcome = _run(ctx, lambda svc: svc.check(task_id, ctx.obj["user"], ctx.obj["keys"]))
    _print_result(outcome.result)


@cli.command("import")
@click.argument("task_id")
@click.pass_context
def cmd_import(ctx: click.Context, task_id: str) -> None:
    """Import a task created elsewhere into history."""
    result = _run(ctx, lambda svc: svc.import_task(task_id, ctx.obj["user"], ctx.obj["keys"]))
    _print_result(result)


@cli.command("refresh")
@click.pass_context
def cmd_refresh(ctx: click.Context) -> None:
    """Re-check all unfinished tasks in history."""
    updated, records = _run(ctx, lambda svc: svc.refresh(ctx.obj["user"], ctx.obj["keys"]))
    console.print(f"[bold]Updated {updated} task(s)[/bold]")
    _print_history(records)


@cli.command("history")
@click.pass_context
def cmd_history(ctx: click.Context) -> None:
    """Show the generation history."""
    records = _run(ctx, _sync(lambda svc: svc.history(ctx.obj["user"])))
    _print_history(records)


@cli.command("delete")
@click.argument("task_id")
@click.pass_context
def cmd_delete(ctx: click.Context, task_id: str) -> None:
    """Delete a task from history."""
    removed = _run(ctx, _sync(lambda svc: svc.delete(ctx.obj["user"], task_id)))
    if removed:
        console.print(f"[green]Deleted {task_id}[/green]")
    else:
        console.print(f"[yellow]{task_id} is not in history[/yellow]")


def _sync(fn: Callable[[RelayService], Any]) -> Callable[[RelayService], Awaitable[Any]]:
    async def wrapper(svc: RelayService) -> Any:
        return fn(svc)
    return wrapper


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
