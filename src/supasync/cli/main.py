"""
SupaSync CLI Main Entry Point.

Provides the command-line interface for syncing a Git repository with a
Supabase project.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from supasync import __version__
from supasync.core.config import (
    DEFAULT_CONFIG_FILE,
    LoggingConfig,
    ProjectConfiguration,
    example_config,
    load_config,
)
from supasync.core.errors import ConfigError, SyncError
from supasync.core.logging import get_logger, setup_logging
from supasync.core.pipeline import PipelineResult, StepResult, StepStatus
from supasync.core.safety import AutoConfirmer, CallbackConfirmer, Confirmer
from supasync.core.session import CommandVerb, SyncSession
from supasync.sync.engine import SyncEngine

console = Console()
logger = get_logger(__name__)

STATUS_STYLES = {
    StepStatus.COMPLETED: ("✓", "green"),
    StepStatus.SKIPPED: ("-", "dim"),
    StepStatus.WARNED: ("!", "yellow"),
    StepStatus.FAILED: ("✗", "red"),
    StepStatus.CANCELLED: ("-", "yellow"),
    StepStatus.PENDING: (" ", "dim"),
}


def get_config(ctx: click.Context) -> ProjectConfiguration:
    """Load and validate the configuration once per invocation."""
    if "config" not in ctx.obj:
        try:
            config = load_config(ctx.obj["config_path"])
        except ConfigError as e:
            setup_logging(LoggingConfig(file_enabled=False), ctx.obj["verbose"])
            print_config_error(e)
            sys.exit(1)
        setup_logging(config.logging, ctx.obj["verbose"])
        ctx.obj["config"] = config
    return ctx.obj["config"]


def get_engine(ctx: click.Context, verb: CommandVerb, restore_target: Path | None = None) -> SyncEngine:
    """Create a session and engine for one command."""
    config = get_config(ctx)
    session = SyncSession(
        command=verb,
        dry_run=ctx.obj["dry_run"],
        force=ctx.obj["force"],
        restore_target=restore_target,
    )
    if session.force:
        confirmer: Confirmer = AutoConfirmer()
    else:
        confirmer = CallbackConfirmer(lambda prompt: click.confirm(prompt, default=False))

    on_step = None if ctx.obj["json_output"] else print_step
    return SyncEngine(config, session, confirmer, on_step=on_step)


def print_config_error(error: ConfigError) -> None:
    console.print(f"[red]{error}[/red]")
    for violation in error.violations:
        console.print(f"  [red]•[/red] {violation}")


def print_step(step: StepResult) -> None:
    symbol, style = STATUS_STYLES[step.status]
    message = f" - {step.message}" if step.message else ""
    console.print(f"[{style}]{symbol} {step.name}[/{style}]{message}")


def save_report(engine: SyncEngine) -> Path | None:
    try:
        return engine.session.save_report(engine.config.logging.log_directory)
    except OSError as e:
        logger.warning("Could not save session report", error=str(e))
        return None


def run_operation(
    ctx: click.Context,
    engine: SyncEngine,
    operation: Callable[[], PipelineResult],
    plan: str | None = None,
) -> None:
    """Run a pipeline, report it, and exit with the matching code."""
    json_output = ctx.obj["json_output"]
    session = engine.session

    if session.dry_run and not json_output:
        console.print("[yellow]DRY RUN - no changes will be made[/yellow]")
        if plan:
            console.print(Panel(engine.plan(plan).get_plan_text(), title="Execution Plan"))

    result = operation()
    report_path = save_report(engine)

    if json_output:
        click.echo(json.dumps(session.to_dict(), indent=2, default=str))
    else:
        print_result(engine, result, report_path)

    if result.error is not None:
        sys.exit(1)


def print_result(engine: SyncEngine, result: PipelineResult, report_path: Path | None) -> None:
    session = engine.session

    for warning in session.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")

    if result.cancelled:
        console.print(f"[yellow]{result.operation.capitalize()} cancelled[/yellow]")
        return

    if result.success:
        console.print(f"[green]✓ {result.operation.capitalize()} completed successfully[/green]")
        if report_path:
            console.print(f"[dim]Session report: {report_path}[/dim]")
        return

    lines = [
        f"[cyan]Failed step:[/cyan] {result.failed_step}",
        f"[cyan]Reason:[/cyan] {result.error}",
    ]
    completed = result.completed_steps
    if completed:
        lines.append(f"[cyan]Completed steps:[/cyan] {', '.join(completed)}")

    backup = engine.recovery_backup()
    if backup is not None:
        lines.append(f"[cyan]Most recent backup:[/cyan] {backup.path}")
    if session.no_rollback_point:
        lines.append("[yellow]No clean rollback point was captured for this run[/yellow]")
    if report_path:
        lines.append(f"[cyan]Session report:[/cyan] {report_path}")

    console.print(Panel("\n".join(lines), title=f"{result.operation.capitalize()} failed", style="red"))


@click.group()
@click.version_option(version=__version__, prog_name="SupaSync")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="SUPASYNC_CONFIG",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to configuration file",
)
@click.option("--dry-run", is_flag=True, help="Show what would be done without making changes")
@click.option("--force", is_flag=True, help="Skip confirmations")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path,
    dry_run: bool,
    force: bool,
    json_output: bool,
    verbose: bool,
) -> None:
    """
    SupaSync - keep a Git repository and a Supabase project in sync.

    Pushes and pulls commits, migrations and data between your local
    setup and the remote project, with backups before every destructive step.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["dry_run"] = dry_run
    ctx.obj["force"] = force
    ctx.obj["json_output"] = json_output
    ctx.obj["verbose"] = verbose


@cli.command("push")
@click.pass_context
def push(ctx: click.Context) -> None:
    """Push local commits, migrations and data to the remote."""
    engine = get_engine(ctx, CommandVerb.PUSH)
    run_operation(ctx, engine, engine.push, plan="push")


@cli.command("pull")
@click.pass_context
def pull(ctx: click.Context) -> None:
    """Pull remote commits, migrations and data into the local setup."""
    engine = get_engine(ctx, CommandVerb.PULL)
    run_operation(ctx, engine, engine.pull, plan="pull")


@cli.command("reset")
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Rebuild the local database from the remote schema."""
    engine = get_engine(ctx, CommandVerb.RESET)
    if not ctx.obj["json_output"]:
        console.print(Panel(engine.plan("reset").get_plan_text(), title="Reset", style="yellow"))
    run_operation(ctx, engine, engine.reset)


@cli.command("backup")
@click.pass_context
def backup(ctx: click.Context) -> None:
    """Create a local database backup and record the Git state."""
    engine = get_engine(ctx, CommandVerb.BACKUP)
    run_operation(ctx, engine, engine.backup, plan="backup")


@cli.command("restore")
@click.argument("backup_file", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def restore(ctx: click.Context, backup_file: Path) -> None:
    """Restore the local database from BACKUP_FILE."""
    engine = get_engine(ctx, CommandVerb.RESTORE, restore_target=backup_file)
    run_operation(ctx, engine, lambda: engine.restore(backup_file))


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show Git, backend, migration and backup status."""
    engine = get_engine(ctx, CommandVerb.STATUS)
    json_output = ctx.obj["json_output"]

    try:
        engine.check_prerequisites()
        if json_output:
            report = engine.status()
        else:
            with console.status("Collecting status..."):
                report = engine.status()
    except SyncError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        data = {
            "git_status": report.git_status,
            "backend_status": report.backend_status,
            "migrations": report.migrations,
            "database_size": report.database_size,
            "table_rows": report.table_rows,
            "health": report.health.to_dict() if report.health else None,
            "backups": [record.to_dict() for record in report.backups],
        }
        click.echo(json.dumps(data, indent=2, default=str))
        return

    console.print(Panel(report.git_status.strip() or "Working tree clean", title="Git Status"))
    console.print(Panel(report.backend_status.strip() or "Not running", title="Supabase Status"))
    console.print(Panel(report.migrations.strip() or "No migrations", title="Migrations"))

    if report.health:
        health = report.health
        panel = Panel(
            f"""[cyan]Running:[/cyan] {"Yes" if health.running else "No"}
[cyan]API reachable:[/cyan] {"Yes" if health.api_reachable else "No"}
[cyan]Database reachable:[/cyan] {"Yes" if health.db_reachable else "No"}
[cyan]Database size:[/cyan] {report.database_size or "Unknown"}""",
            title="Health",
            style="green" if health.healthy else "yellow",
        )
        console.print(panel)

    if report.table_rows:
        table = Table(title="Tables")
        table.add_column("Table", style="cyan")
        table.add_column("Rows", style="green", justify="right")
        for name, rows in report.table_rows.items():
            table.add_row(name, "?" if rows is None else humanize.intcomma(rows))
        console.print(table)

    if report.backups:
        now = datetime.now()
        table = Table(title="Recent Backups")
        table.add_column("File", style="cyan")
        table.add_column("Kind", style="yellow")
        table.add_column("Size", style="green")
        table.add_column("Age", style="white")
        for record in report.backups[:5]:
            expired = " (past retention)" if engine.backups.is_expired(record, now) else ""
            table.add_row(
                record.path.name,
                record.kind.value,
                humanize.naturalsize(record.size_bytes, binary=True),
                humanize.naturaltime(now - record.timestamp) + expired,
            )
        console.print(table)
    else:
        console.print("[dim]No backups found[/dim]")


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the current configuration (credential masked)."""
    try:
        config = ProjectConfiguration.load(ctx.obj["config_path"])
    except ConfigError as e:
        print_config_error(e)
        sys.exit(1)

    data = config.model_dump(mode="json")
    if ctx.obj["json_output"]:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    table = Table(title=f"Configuration: {ctx.obj['config_path']}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for section, values in data.items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", json.dumps(value) if isinstance(value, (list, dict)) else str(value))
        else:
            table.add_row(section, str(values))
    console.print(table)


@cli.command("validate")
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the configuration and report every problem."""
    try:
        config = ProjectConfiguration.load(ctx.obj["config_path"])
        violations = config.validate_project()
    except ConfigError as e:
        violations = e.violations or [str(e)]

    if ctx.obj["json_output"]:
        click.echo(json.dumps({"valid": not violations, "violations": violations}, indent=2))
    elif violations:
        console.print("[red]Configuration validation failed:[/red]")
        for violation in violations:
            console.print(f"  [red]•[/red] {violation}")
    else:
        console.print("[green]✓ Configuration is valid[/green]")

    if violations:
        sys.exit(1)


@cli.command("setup")
@click.pass_context
def setup(ctx: click.Context) -> None:
    """Write a template configuration and create working directories."""
    config_path: Path = ctx.obj["config_path"]

    if config_path.exists() and not ctx.obj["force"]:
        console.print(f"[yellow]{config_path} already exists; use --force to overwrite[/yellow]")
        return

    config = example_config()
    if ctx.obj["dry_run"]:
        console.print(f"[yellow][DRY RUN] Would write {config_path}[/yellow]")
        return

    config.save(config_path)
    config.ensure_directories()
    console.print(f"[green]✓ Wrote {config_path}[/green]")
    console.print(
        Panel(
            "1. Edit the configuration file with your Git remote and project reference\n"
            "2. Export SUPABASE_DB_PASSWORD with your database password\n"
            "3. Run 'supasync validate' to check the setup",
            title="Next Steps",
        )
    )


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
