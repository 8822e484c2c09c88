"""Command-line interface for dotmerge."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import ConfigError, load_config
from .errors import DotmergeError
from .filesystem import read_text
from .manager import DotmergeManager
from .models import (
    BackupEntry,
    InstallResult,
    LinkResult,
    RevertAction,
    RevertResult,
    Section,
    SectionDiff,
    SetupSelections,
    ToolState,
    ToolStatus,
)
from .sections import parse_sections

app = typer.Typer(help="Merge shell configuration and manage reversible dotfile changes")
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show informational log messages")) -> None:
    """Configure logging for the invoked command."""

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=False)],
        force=True,
    )


def _load_manager(config: Path | None) -> DotmergeManager:
    config_obj = load_config(config)
    return DotmergeManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, OSError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, DotmergeError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_timestamp(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _format_sections(sections: Iterable[Section], *, title: str | None = None) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Lines")
    table.add_column("Kind")
    table.add_column("Name", overflow="fold")
    table.add_column("Description", overflow="fold")

    for section in sections:
        table.add_row(
            f"{section.start_line}-{section.end_line}",
            section.kind.value,
            section.name,
            section.description,
        )

    console.print(table)


def _format_diff(diff: SectionDiff) -> None:
    if diff.new:
        _format_sections(diff.new, title="New sections")

    if diff.conflicts:
        table = Table(title="Conflicting sections", show_header=True, header_style="bold magenta")
        table.add_column("Kind")
        table.add_column("Name", overflow="fold")
        table.add_column("Yours", overflow="fold")
        table.add_column("Reference", overflow="fold")
        for conflict in diff.conflicts:
            table.add_row(
                conflict.reference.kind.value,
                conflict.reference.name,
                conflict.user.content.rstrip("\n"),
                conflict.reference.content.rstrip("\n"),
            )
        console.print(table)

    console.print(f"[bold]{diff.summary()}[/bold]")


def _format_backups(entries: Iterable[BackupEntry]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Original", overflow="fold")
    table.add_column("Kind")
    table.add_column("Package")
    table.add_column("Taken")
    table.add_column("Backup", overflow="fold")

    for entry in entries:
        table.add_row(
            str(entry.original),
            entry.kind.value,
            entry.package or "",
            _format_timestamp(entry.timestamp),
            str(entry.backup),
        )

    console.print(table)


def _format_revert_results(results: Iterable[RevertResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Original", overflow="fold")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    styles = {
        RevertAction.RESTORED: "green",
        RevertAction.MISSING_BACKUP: "yellow",
        RevertAction.FAILED: "red",
    }
    for result in results:
        style = styles.get(result.action, "white")
        table.add_row(
            str(result.entry.original),
            f"[{style}]{result.action.value}[/{style}]",
            result.details or "",
        )

    console.print(table)


def _format_install(result: InstallResult) -> None:
    message = f"[green]{result.action.value}[/green] {result.target}"
    if result.backup is not None:
        message += f" (previous file kept at {result.backup.backup})"
    console.print(message)


def _format_link_results(results: Iterable[LinkResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Package")
    table.add_column("Target", overflow="fold")
    table.add_column("Action")

    for result in results:
        table.add_row(result.package, str(result.target), result.action.value)

    console.print(table)


def _format_selections(selections: SetupSelections) -> None:
    console.print(f"[bold]Apps:[/bold] {', '.join(selections.apps) or '-'}")
    console.print(f"[bold]Configs:[/bold] {', '.join(selections.configs) or '-'}")

    if not selections.features:
        console.print("[yellow]No feature flags set.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Feature")
    table.add_column("Enabled")
    for name in sorted(selections.features):
        enabled = selections.is_feature_enabled(name)
        table.add_row(name, "[green]yes[/green]" if enabled else "[red]no[/red]")

    console.print(table)


def _format_tools(statuses: Iterable[ToolStatus]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tool")
    table.add_column("State")
    table.add_column("Missing", overflow="fold")

    styles = {
        ToolState.INSTALLED: "green",
        ToolState.PARTIAL: "yellow",
        ToolState.NOT_INSTALLED: "red",
    }
    for status in statuses:
        style = styles.get(status.state, "white")
        table.add_row(status.name, f"[{style}]{status.state.value}[/{style}]", ", ".join(status.missing))

    console.print(table)


@app.command()
def sections(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Shell script to parse"),
) -> None:
    """List the sections dotmerge recognises in a shell script."""

    script = parse_sections(read_text(file))
    _format_sections(script)


@app.command()
def diff(
    target: Path = typer.Argument(..., help="Your shell rc file"),
    reference: Path = typer.Argument(..., help="Reference shell configuration"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Show which reference sections are new or conflict with yours."""

    try:
        manager = _load_manager(config)
        plan = manager.plan_merge(target, reference)
        _format_diff(plan.diff)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def compare(
    left: Path = typer.Argument(..., help="First file"),
    right: Path = typer.Argument(..., help="Second file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Compare two files line by line; exits with status 1 when they differ."""

    try:
        manager = _load_manager(config)
        comparison = manager.compare(left, right)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if comparison.identical:
        console.print("[green]Files are identical.[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Line")
    table.add_column(str(left), overflow="fold")
    table.add_column(str(right), overflow="fold")
    for difference in comparison.differences:
        table.add_row(
            str(difference.index + 1),
            "" if difference.left is None else difference.left,
            "" if difference.right is None else difference.right,
        )
    console.print(table)
    raise typer.Exit(code=1)


@app.command()
def merge(
    target: Path = typer.Argument(..., help="Your shell rc file"),
    reference: Path = typer.Argument(..., help="Reference shell configuration"),
    section: list[str] = typer.Option(None, "--section", "-s", help="Reference section name(s) to merge"),
    include_conflicts: bool = typer.Option(
        False,
        "--include-conflicts",
        help="Also merge reference versions of conflicting sections when no --section is given",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be merged"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Inject reference sections into the managed block of a shell rc file."""

    try:
        manager = _load_manager(config)
        if dry_run:
            _format_diff(manager.plan_merge(target, reference).diff)
            return
        result = manager.merge(target, reference, section or None, include_conflicts=include_conflicts)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not result.changed:
        console.print("[green]Nothing to merge.[/green]")
        return
    _format_sections(result.applied, title=f"Merged into {result.target}")
    if result.backup is not None:
        console.print(f"[yellow]Previous version kept at {result.backup.backup}[/yellow]")


@app.command()
def install(
    source: Path = typer.Argument(..., help="Template file to install"),
    target: Path = typer.Argument(..., help="Destination path"),
    backup: bool = typer.Option(True, "--backup/--no-backup", help="Keep the existing target as a backup"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Install a template file, backing up whatever it replaces."""

    try:
        manager = _load_manager(config)
        _format_install(manager.install_file(source, target, backup=backup))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def link(
    package: list[str] = typer.Argument(..., help="Package(s) under the packages directory"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Link configuration packages into the target directory."""

    try:
        manager = _load_manager(config)
        results: list[LinkResult] = []
        for name in package:
            results.extend(manager.link_package(name))
        _format_link_results(results)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def backups(
    show_all: bool = typer.Option(False, "--all", help="List every recorded backup, not only the newest per file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """List recorded backups."""

    try:
        manager = _load_manager(config)
        entries = manager.backups() if show_all else manager.revert_candidates()
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not entries:
        console.print("[yellow]No backups recorded.[/yellow]")
        return
    _format_backups(entries)


@app.command()
def revert(
    paths: list[Path] = typer.Argument(None, help="Original path(s) to restore from their newest backup"),
    revert_all: bool = typer.Option(False, "--all", help="Restore the newest backup of every recorded file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Restore files from recorded backups."""

    try:
        manager = _load_manager(config)
        if revert_all:
            results = manager.revert(manager.revert_candidates())
        elif paths:
            results = manager.revert_paths(paths)
        else:
            console.print("[red]Pass one or more paths, or --all.[/red]")
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not results:
        console.print("[yellow]No backups to revert.[/yellow]")
        return
    _format_revert_results(results)
    if any(result.action is not RevertAction.RESTORED for result in results):
        raise typer.Exit(code=1)


@app.command()
def features(
    enable: list[str] = typer.Option(None, "--enable", "-e", help="Feature flag(s) to turn on"),
    disable: list[str] = typer.Option(None, "--disable", "-d", help="Feature flag(s) to turn off"),
    app_name: list[str] = typer.Option(None, "--app", help="Replace the recorded app list with these apps"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml"),
) -> None:
    """Show or change the recorded apps, linked configs and feature flags."""

    try:
        manager = _load_manager(config)
        flags = {name: True for name in enable or []}
        flags.update({name: False for name in disable or []})
        if flags:
            manager.set_features(flags)
        if app_name:
            manager.set_apps(app_name)
        _format_selections(manager.selections())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def tools(config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotmerge.toml")) -> None:
    """Report the install state of configured tools."""

    try:
        manager = _load_manager(config)
        _format_tools(manager.tool_states())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
