"""PromptBoard CLI: local prompt templates with placeholders and backups."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .backup import BackupManager
from .engine import (
    PromptEngine,
    get_all_tags,
    get_prompt_stats,
    process_prompts,
)
from .errors import ErrorCode, PromptboardError
from .storage import Storage
from .template import AUTO_VALUE_NAMES
from .transfer import (
    export_filename,
    export_to_json,
    export_to_markdown,
    format_date,
    read_import_file,
)
from .validation import parse_tags_string

console = Console()
err_console = Console(stderr=True)

LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _setup_logging(verbose: bool, log_file: Path | None) -> None:
    """Attach handlers to the package logger for --verbose / --log-file."""
    logger = logging.getLogger("promptboard")
    logger.handlers.clear()
    if not verbose and log_file is None:
        return

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    if verbose:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def _fail(e: PromptboardError) -> None:
    console.print(f"[red]Error:[/red] {escape(e.message)}")
    sys.exit(1)


def _engine(ctx: click.Context) -> PromptEngine:
    return ctx.obj["engine"]


def _backups(ctx: click.Context) -> BackupManager:
    return ctx.obj["backups"]


def _resolve_id(engine: PromptEngine, prompt_id: str) -> str:
    """Accept a unique id prefix, as shown by `list`."""
    matches = [p.id for p in engine.list_prompts() if p.id.startswith(prompt_id)]
    return matches[0] if len(matches) == 1 else prompt_id


def _after_change(ctx: click.Context) -> None:
    try:
        backup = _backups(ctx).maybe_backup()
    except (PromptboardError, OSError) as e:
        console.print(f"[red]Auto-backup failed:[/red] {escape(str(e))}")
        return
    if backup:
        console.print(f"[green]Auto-backup saved[/green] [dim]({backup.id[:8]})[/dim]")


def _read_content(content: str | None, from_file: Path | None) -> str | None:
    if from_file is not None:
        return from_file.read_text()
    return content


def _collect_tags(tag: tuple[str, ...], tags: str | None) -> list[str]:
    return list(tag) + parse_tags_string(tags)


@click.group()
@click.version_option(package_name="promptboard")
@click.option(
    "--db",
    type=click.Path(path_type=Path, dir_okay=False),
    envvar="PROMPTBOARD_DB",
    default=None,
    help="Database file",
)
@click.option(
    "--backups-dir",
    type=click.Path(path_type=Path, file_okay=False),
    envvar="PROMPTBOARD_BACKUPS_DIR",
    default=None,
    help="Directory for backup files",
)
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Append log output to this file",
)
@click.pass_context
def cli(ctx, db: Path | None, backups_dir: Path | None, verbose: bool, log_file: Path | None):
    """PromptBoard - local prompt templates."""
    _setup_logging(verbose, log_file)
    storage = Storage(db_path=db)
    engine = PromptEngine(storage)
    ctx.obj = {
        "storage": storage,
        "engine": engine,
        "backups": BackupManager(storage, engine, backups_dir=backups_dir),
    }


@cli.command()
@click.argument("title")
@click.option("--content", "-c", default=None, help="Prompt text")
@click.option(
    "--from-file", "-f", type=click.Path(exists=True, path_type=Path), default=None,
    help="Read prompt text from a file",
)
@click.option("--tag", "-t", multiple=True, help="Tag (repeatable)")
@click.option("--tags", default=None, help="Comma-separated tags")
@click.pass_context
def add(ctx, title: str, content: str | None, from_file: Path | None, tag, tags):
    """Create a prompt."""
    data = {
        "title": title,
        "content": _read_content(content, from_file) or "",
        "tags": _collect_tags(tag, tags),
    }
    try:
        prompt = _engine(ctx).create_prompt(data)
    except PromptboardError as e:
        _fail(e)
    console.print(f"[green]Prompt created:[/green] {escape(prompt.title)} [dim]({prompt.id})[/dim]")
    _after_change(ctx)


@cli.command()
@click.argument("prompt_id")
@click.option("--title", default=None, help="New title")
@click.option("--content", "-c", default=None, help="New prompt text")
@click.option(
    "--from-file", "-f", type=click.Path(exists=True, path_type=Path), default=None,
    help="Read new prompt text from a file",
)
@click.option("--tag", "-t", multiple=True, help="Replace tags (repeatable)")
@click.option("--tags", default=None, help="Replace tags (comma-separated)")
@click.option("--clear-tags", is_flag=True, help="Remove all tags")
@click.pass_context
def edit(ctx, prompt_id, title, content, from_file, tag, tags, clear_tags):
    """Update fields of a prompt."""
    engine = _engine(ctx)
    changes: dict = {}
    if title is not None:
        changes["title"] = title
    new_content = _read_content(content, from_file)
    if new_content is not None:
        changes["content"] = new_content
    if clear_tags:
        changes["tags"] = []
    elif tag or tags:
        changes["tags"] = _collect_tags(tag, tags)

    if not changes:
        console.print("[yellow]Nothing to update.[/yellow]")
        return

    try:
        prompt = engine.update_prompt(_resolve_id(engine, prompt_id), changes)
    except PromptboardError as e:
        _fail(e)
    console.print(f"[green]Prompt updated:[/green] {escape(prompt.title)}")
    _after_change(ctx)


@cli.command()
@click.argument("prompt_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def rm(ctx, prompt_id: str, yes: bool):
    """Delete a prompt."""
    engine = _engine(ctx)
    try:
        prompt = engine.get_prompt(_resolve_id(engine, prompt_id))
        if not yes:
            click.confirm(
                f'Delete "{prompt.title}"? This action cannot be undone.', abort=True
            )
        engine.delete_prompt(prompt.id)
    except PromptboardError as e:
        _fail(e)
    console.print("[green]Prompt deleted[/green]")
    _after_change(ctx)


@cli.command()
@click.argument("prompt_id")
@click.pass_context
def duplicate(ctx, prompt_id: str):
    """Copy a prompt under a new id."""
    engine = _engine(ctx)
    try:
        prompt = engine.duplicate_prompt(_resolve_id(engine, prompt_id))
    except PromptboardError as e:
        _fail(e)
    console.print(f"[green]Prompt duplicated:[/green] {escape(prompt.title)} [dim]({prompt.id})[/dim]")
    _after_change(ctx)


@cli.command()
@click.argument("prompt_id")
@click.pass_context
def show(ctx, prompt_id: str):
    """Show a prompt."""
    engine = _engine(ctx)
    try:
        prompt = engine.get_prompt(_resolve_id(engine, prompt_id))
    except PromptboardError as e:
        _fail(e)
    console.print(
        Panel(
            escape(prompt.content) or "[dim](empty)[/dim]",
            title=escape(prompt.title),
            subtitle=escape(", ".join(prompt.tags)) or None,
        )
    )
    console.print(
        f"[dim]{prompt.id} | Created: {format_date(prompt.created_at)}"
        f" | Updated: {format_date(prompt.updated_at)}[/dim]"
    )


@cli.command(name="list")
@click.option("--query", "-q", default=None, help="Search title, content and tags")
@click.option("--tag", "-t", multiple=True, help="Require tag (repeatable)")
@click.option(
    "--output", "-o", type=click.Choice(["text", "json"]), default="text", help="Output format"
)
@click.pass_context
def list_cmd(ctx, query: str | None, tag, output: str):
    """List prompts, newest first."""
    prompts = process_prompts(_engine(ctx).list_prompts(), query, list(tag))

    if output == "json":
        click.echo(json.dumps([p.to_dict() for p in prompts], indent=2))
        return

    if not prompts:
        console.print("[yellow]No prompts found.[/yellow]")
        return

    table = Table(title="Prompts")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Tags", style="green")
    table.add_column("Updated")
    for p in prompts:
        table.add_row(
            p.id[:8], escape(p.title[:50]), escape(", ".join(p.tags)), format_date(p.updated_at)
        )
    console.print(table)


@cli.command()
@click.pass_context
def tags(ctx):
    """List tags with usage counts."""
    all_tags = get_all_tags(_engine(ctx).list_prompts())
    if not all_tags:
        console.print("[yellow]No tags yet.[/yellow]")
        return

    table = Table(title="Tags")
    table.add_column("Tag", style="green")
    table.add_column("Prompts", justify="right")
    for tag, count in all_tags:
        table.add_row(escape(tag), str(count))
    console.print(table)


@cli.command()
@click.argument("prompt_id")
@click.option("--var", "variables", multiple=True, help="name=value (repeatable)")
@click.option("--no-input", is_flag=True, help="Do not ask for missing values")
@click.pass_context
def use(ctx, prompt_id: str, variables, no_input: bool):
    """Fill a prompt's placeholders and print the result."""
    engine = _engine(ctx)
    try:
        prompt_id = _resolve_id(engine, prompt_id)
        placeholders = engine.detect_placeholders(prompt_id)
        cached = engine.get_variables_with_auto(prompt_id)
    except PromptboardError as e:
        _fail(e)

    supplied: dict[str, str] = {}
    for item in variables:
        name, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected name=value, got {item!r}", param_hint="--var")
        supplied[name.strip()] = value

    values = dict(cached)
    values.update(supplied)
    for placeholder in placeholders:
        name = placeholder.name
        if name in supplied or name in AUTO_VALUE_NAMES or no_input:
            continue
        default = cached.get(name) or placeholder.default_value
        values[name] = click.prompt(
            name, default=default, show_default=bool(default), err=True
        ).strip()

    def copy(text: str) -> bool:
        click.echo(text)
        return True

    try:
        result = engine.insert_and_copy(prompt_id, values, copy)
    except PromptboardError as e:
        _fail(e)
    if result.missing:
        err_console.print(f"[yellow]Missing values:[/yellow] {', '.join(result.missing)}")


@cli.command()
@click.option(
    "--format", "fmt", type=click.Choice(["json", "markdown"]), default="json",
    help="Export format",
)
@click.option(
    "--output", "-o", type=click.Path(path_type=Path), default=None,
    help="File or directory to write (stdout if omitted)",
)
@click.pass_context
def export(ctx, fmt: str, output: Path | None):
    """Export all prompts."""
    state = ctx.obj["storage"].load()
    try:
        text = export_to_markdown(state) if fmt == "markdown" else export_to_json(state)
    except PromptboardError as e:
        if e.code == ErrorCode.EMPTY_EXPORT:
            console.print(f"[yellow]{e.message}[/yellow]")
            return
        _fail(e)

    if output is None:
        click.echo(text)
        return
    if output.is_dir():
        output = output / export_filename("md" if fmt == "markdown" else "json")
    output.write_text(text)
    console.print(f"[green]Export written:[/green] {output}")


@cli.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--mode", type=click.Choice(["merge", "replace"]), default="merge",
    help="merge: add new prompts, skip duplicates; replace: replace all prompts",
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def import_cmd(ctx, file: Path, mode: str, yes: bool):
    """Import prompts from a JSON export."""
    try:
        data = read_import_file(file)
    except PromptboardError as e:
        _fail(e)

    console.print(
        Panel(
            f"Total items: {data.total_count}\n"
            f"Valid prompts: {data.valid_count}\n"
            f"Errors: {data.error_count}",
            title="Import Prompts",
        )
    )
    for error in data.errors:
        console.print(f"  [red]•[/red] {escape(error)}")
    if data.error_count > len(data.errors):
        console.print(f"  [dim]... and {data.error_count - len(data.errors)} more[/dim]")

    if data.valid_count == 0:
        console.print("[red]No valid prompts found to import.[/red]")
        sys.exit(1)

    if not yes:
        click.confirm(f"Import {data.valid_count} prompts ({mode})?", abort=True)

    try:
        result = _engine(ctx).batch_create(data.prompts, mode)
    except PromptboardError as e:
        _fail(e)

    if result.created:
        message = f"Imported {result.created} prompts"
        if result.skipped:
            message += f", skipped {result.skipped}"
        console.print(f"[green]{message}[/green]")
        _after_change(ctx)
    elif result.errors:
        console.print("[red]Import failed with errors[/red]")
        for error in result.errors:
            console.print(f"  [red]•[/red] {escape(error)}")
        sys.exit(1)
    else:
        console.print("[yellow]No new prompts to import.[/yellow]")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show collection statistics."""
    s = get_prompt_stats(_engine(ctx).list_prompts())
    info = ctx.obj["storage"].get_storage_info()
    oldest = format_date(s["oldest_prompt"]) if s["oldest_prompt"] else "-"
    newest = format_date(s["newest_prompt"]) if s["newest_prompt"] else "-"
    console.print(
        Panel(
            f"Prompts: {s['total_prompts']}\n"
            f"Tags: {s['total_tags']}\n"
            f"Average tags per prompt: {s['average_tags_per_prompt']}\n"
            f"Oldest: {oldest}\n"
            f"Last updated: {newest}\n"
            f"Storage: {info['size_kb']} KB",
            title="PromptBoard Stats",
        )
    )


@cli.command()
@click.option("--auto-backup/--no-auto-backup", default=None, help="Toggle auto-backup")
@click.option("--threshold", type=int, default=None, help="Changes between auto-backups")
@click.option("--clear-variables", is_flag=True, help="Forget all remembered placeholder values")
@click.pass_context
def settings(ctx, auto_backup: bool | None, threshold: int | None, clear_variables: bool):
    """Show or change preferences."""
    storage: Storage = ctx.obj["storage"]
    try:
        if auto_backup is not None or threshold is not None:
            prefs = storage.update_settings(auto_backup, threshold)
            console.print("[green]Settings saved[/green]")
        else:
            prefs = storage.get_preferences()
    except PromptboardError as e:
        _fail(e)

    if clear_variables:
        count = _engine(ctx).clear_all_variables()
        console.print(f"[green]Cleared remembered values for {count} prompts[/green]")

    console.print(
        Panel(
            f"Auto-backup: {'on' if prefs.auto_backup_enabled else 'off'}\n"
            f"Threshold: {prefs.auto_backup_threshold} changes\n"
            f"Changes since last backup: {prefs.change_counter}",
            title="Settings",
        )
    )


@cli.group()
def backup():
    """Local backups (last 3 kept)."""


@backup.command(name="save")
@click.pass_context
def backup_save(ctx):
    """Snapshot current prompts into the local backup ring."""
    try:
        b = _backups(ctx).save_current_backup()
    except PromptboardError as e:
        _fail(e)
    console.print(f"[green]Backup saved:[/green] {b.id} ({b.prompt_count} prompts)")


@backup.command(name="list")
@click.pass_context
def backup_list(ctx):
    """List local backups, newest first."""
    backups = _backups(ctx).list_local_backups()
    if not backups:
        console.print("[yellow]No local backups yet.[/yellow]")
        return

    table = Table(title="Local Backups")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Backup ID", style="cyan")
    table.add_column("Created")
    table.add_column("Prompts", justify="right")
    for i, b in enumerate(backups, 1):
        table.add_row(str(i), b.id, format_date(b.timestamp), str(b.prompt_count))
    console.print(table)


@backup.command(name="restore")
@click.argument("backup_id")
@click.option("--mode", type=click.Choice(["merge", "replace"]), default="merge")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def backup_restore(ctx, backup_id: str, mode: str, yes: bool):
    """Restore a local backup."""
    if mode == "replace" and not yes:
        click.confirm("Replace all existing prompts with this backup?", abort=True)
    try:
        result = _backups(ctx).restore_local_backup(backup_id, mode)
    except PromptboardError as e:
        _fail(e)

    if result.created:
        message = f"Backup restored ({mode}): {result.created} prompts"
        if result.skipped:
            message += f", skipped {result.skipped}"
        console.print(f"[green]{message}[/green]")
        _after_change(ctx)
    elif result.errors:
        console.print("[red]Backup restore failed with errors[/red]")
        sys.exit(1)
    else:
        console.print("[yellow]No new prompts from backup.[/yellow]")


@backup.command(name="download")
@click.argument("backup_id")
@click.pass_context
def backup_download(ctx, backup_id: str):
    """Write a local backup to a JSON file."""
    try:
        path = _backups(ctx).download_local_backup(backup_id)
    except PromptboardError as e:
        _fail(e)
    except OSError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    console.print(f"[green]Backup downloaded:[/green] {path}")


@backup.command(name="export")
@click.pass_context
def backup_export(ctx):
    """Write the current prompts to a backup JSON file."""
    try:
        path = _backups(ctx).download_backup()
    except OSError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    console.print(f"[green]Backup written:[/green] {path}")


def main():
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
