"""Commands for following and steering page generation."""

from __future__ import annotations

import typer

from sitemapper.models import GenerationTask

from cli.context import require_context
from cli.rendering import render_task
from cli.session import open_editor, require_tracker, run

tasks_app = typer.Typer(help="Follow and control page generation.", no_args_is_help=True)


@tasks_app.command("list")
@require_context
def tasks_list() -> None:
    """Show the running generation task of the active sitemap, if any."""

    async def _list() -> None:
        async with open_editor(tasks=True) as editor:
            tracker = require_tracker(editor, task_required=False)
            if tracker.task is None:
                typer.echo("No active generation task.")
                return
            typer.echo(render_task(tracker.task, tracker.visible_nodes()))

    run(_list())


@tasks_app.command("watch")
@require_context
def tasks_watch() -> None:
    """Stream generation progress until the task finishes."""

    async def _watch() -> None:
        async with open_editor(tasks=True) as editor:
            tracker = require_tracker(editor, task_required=False)
            last = ""

            def _print(task: GenerationTask | None) -> None:
                if task is None:
                    return
                nonlocal last
                text = render_task(task, tracker.visible_nodes())
                if text != last:
                    last = text
                    typer.echo(text)
                    typer.echo("")

            tracker.on_change = _print
            if tracker.task is not None:
                _print(tracker.task)
            typer.echo("Waiting for generation events… (Ctrl+C to stop)")
            await tracker.consume(until_finished=True)

    run(_watch())


@tasks_app.command("pause")
@require_context
def tasks_pause() -> None:
    """Pause the running generation task."""

    async def _pause() -> None:
        async with open_editor(tasks=True) as editor:
            task = await require_tracker(editor).pause()
            typer.echo(f"⏸️  Paused task {task.id}")

    run(_pause())


@tasks_app.command("resume")
@require_context
def tasks_resume() -> None:
    """Resume a paused generation task."""

    async def _resume() -> None:
        async with open_editor(tasks=True) as editor:
            task = await require_tracker(editor).resume()
            typer.echo(f"▶️  Resumed task {task.id}")

    run(_resume())


@tasks_app.command("cancel")
@require_context
def tasks_cancel() -> None:
    """Cancel the generation task."""

    async def _cancel() -> None:
        async with open_editor(tasks=True) as editor:
            task = await require_tracker(editor).cancel()
            typer.echo(f"🛑 Cancelled task {task.id}")

    run(_cancel())
