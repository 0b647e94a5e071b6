"""
Main CLI entry point for ExplorerLLM Ops.

This module provides the command-line interface using Click with Rich
formatting: backup, restore, migrate and verify.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from explorerllm_ops import __version__
from explorerllm_ops.core.error_handler import ErrorContext, ErrorHandler
from explorerllm_ops.core.exceptions import ExplorerLLMOpsError
from explorerllm_ops.models.config import OpsSettings, PipelineOptions
from explorerllm_ops.models.session import PipelineContext, PipelineState, StepStatus
from explorerllm_ops.orchestrator.orchestrator import BackupRestoreOrchestrator
from explorerllm_ops.utils.helpers import format_duration
from explorerllm_ops.utils.logging import setup_logging

console = Console()

CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'])


def _error_context(pipeline_ctx: Optional[PipelineContext]) -> ErrorContext:
    if pipeline_ctx is None:
        return ErrorContext()
    failed = [s.name for s in pipeline_ctx.steps if s.status == StepStatus.FAILED]
    reached = [t.from_state for t in pipeline_ctx.history if t.to_state == PipelineState.FAILED]
    return ErrorContext(
        pipeline=pipeline_ctx.pipeline,
        step=failed[-1] if failed else None,
        state=reached[-1].value if reached else pipeline_ctx.state.value,
    )


def report_error(error: ExplorerLLMOpsError, verbose: bool = False):
    """Print an error and its remediation steps."""
    info = ErrorHandler().handle_error(error, _error_context(error.context))

    body = Text()
    body.append(f"{error.message}\n", style="bold red")
    if info.context.step:
        body.append(f"\nFailed step: {info.context.step}", style="dim")
    body.append(f"\nCategory: {info.category.value}", style="dim")
    if info.remediation_steps:
        body.append("\n\nWhat to do:\n", style="bold yellow")
        for step in info.remediation_steps:
            body.append(f"• {step}\n")

    console.print(Panel(body, title=f"Error: {error.code}", border_style="red", padding=(1, 2)))
    if verbose and info.traceback_str:
        console.print(f"[dim]{info.traceback_str}[/dim]")


def _print_outcome(result: PipelineContext):
    if result.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in result.warnings:
            console.print(f"  • [yellow]{warning}[/yellow]")

    if result.dry_run:
        planned = Text()
        for action in result.planned_actions:
            planned.append(f"• Would {action}\n")
        if not result.planned_actions:
            planned.append("No changes would be made")
        console.print(Panel(planned, title="Dry Run", border_style="cyan", padding=(1, 2)))

    if result.finished_at:
        elapsed = (result.finished_at - result.started_at).total_seconds()
        console.print(f"[dim]{result.pipeline.capitalize()} finished in {format_duration(elapsed)}[/dim]")


def _run(ctx: click.Context, pipeline, *args, **kwargs) -> PipelineContext:
    """Build settings and orchestrator, run a pipeline and exit 1 on failure."""
    verbose = ctx.obj.get('verbose', False)
    try:
        settings = OpsSettings.load(
            config_file=ctx.obj.get('config'),
            project_dir=ctx.obj.get('project_dir'),
        )
        orchestrator = BackupRestoreOrchestrator(settings)
        result = getattr(orchestrator, pipeline)(*args, **kwargs)
    except ExplorerLLMOpsError as e:
        report_error(e, verbose)
        if e.context is not None:
            _print_outcome(e.context)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)

    _print_outcome(result)
    return result


@click.group(invoke_without_command=True, context_settings=CONTEXT_SETTINGS)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--project-dir', type=click.Path(file_okay=False),
              envvar='EXPLORERLLM_PROJECT_DIR', help='Directory holding docker-compose.yml')
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration file')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Write JSON logs to this file')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool, project_dir: Optional[str],
         config: Optional[str], log_file: Optional[str]):
    """
    ExplorerLLM Ops

    Backup, restore, verify and migrate the ExplorerLLM docker-compose
    deployment (Ollama and OpenWebUI).
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config'] = config
    ctx.obj['project_dir'] = str(Path(project_dir).resolve()) if project_dir else None

    if version:
        console.print(f"ExplorerLLM Ops version {__version__}")
        sys.exit(0)

    setup_logging(level="DEBUG" if verbose else "INFO", log_file=log_file)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.argument('directory', required=False, type=click.Path(file_okay=False))
@click.pass_context
def backup(ctx: click.Context, directory: Optional[str]):
    """Back up WebUI data, models and configuration into DIRECTORY."""
    result = _run(ctx, "backup", directory)

    summary = result.summary
    details = Text()
    details.append(f"Location: {summary.get('location')}\n", style="bold")
    if summary.get('size'):
        details.append(f"Size: {summary['size']}\n")
    details.append("\nFiles:\n", style="bold")
    for name in summary.get('files', []):
        details.append(f"• {name}\n")
    if summary.get('removed'):
        details.append(f"\nExpired backups removed: {len(summary['removed'])}\n", style="dim")
    details.append("\nTo restore:\n", style="bold")
    details.append(summary.get('restore_command', ''), style="cyan")
    console.print(Panel(details, title="Backup Complete", border_style="green", padding=(1, 2)))


@main.command()
@click.argument('backup_directory', type=click.Path(file_okay=False))
@click.option('--force', is_flag=True, help='Restore even if services are running')
@click.option('--dry-run', is_flag=True, help='Show what would be done without making changes')
@click.option('--skip-config', is_flag=True, help='Keep the current docker-compose.yml')
@click.pass_context
def restore(ctx: click.Context, backup_directory: str, force: bool, dry_run: bool, skip_config: bool):
    """Restore a backup set from BACKUP_DIRECTORY."""
    options = PipelineOptions(force_restore=force, dry_run=dry_run, skip_config=skip_config)
    result = _run(ctx, "restore", backup_directory, options)
    if dry_run:
        return

    next_steps = Text()
    next_steps.append(f"Backup {result.summary.get('backup_id')} restored\n\n", style="bold")
    next_steps.append(f"• Open the WebUI at {result.summary.get('webui_url')}\n")
    next_steps.append("• Log in with your existing credentials\n")
    next_steps.append("• Check models with: explorerllm-ops verify\n")
    console.print(Panel(next_steps, title="Restore Complete", border_style="green", padding=(1, 2)))


@main.command()
@click.argument('source_host')
@click.argument('destination_host')
@click.option('--user', '-u', envvar='REMOTE_USER', help='SSH user on both hosts')
@click.option('--path', '-p', 'base_path', envvar='REMOTE_PATH', help='Base path on both hosts')
@click.option('--key', '-k', 'ssh_key', envvar='SSH_KEY', help='SSH private key file')
@click.option('--dry-run', is_flag=True, help='Show what would be done without making changes')
@click.option('--skip-docker', is_flag=True, help='Do not install Docker on the destination')
@click.option('--skip-backup', is_flag=True, help='Reuse the existing backup on the source')
@click.pass_context
def migrate(ctx: click.Context, source_host: str, destination_host: str, user: Optional[str],
            base_path: Optional[str], ssh_key: Optional[str], dry_run: bool, skip_docker: bool,
            skip_backup: bool):
    """Migrate the deployment from SOURCE_HOST to DESTINATION_HOST."""
    options = PipelineOptions(dry_run=dry_run, skip_docker=skip_docker, skip_backup=skip_backup)
    result = _run(
        ctx, "migrate", source_host, destination_host,
        user=user, base_path=base_path, ssh_key=ssh_key, options=options
    )
    if dry_run:
        return

    summary = result.summary
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Source", summary.get('source', ''))
    table.add_row("Destination", summary.get('destination', ''))
    table.add_row("Installed in", summary.get('destination_path', ''))
    table.add_row("Models", str(summary.get('models')))
    table.add_row("WebUI", summary.get('webui_url', ''))
    console.print(Panel(table, title="Migration Complete", border_style="green", padding=(1, 2)))


@main.command()
@click.pass_context
def verify(ctx: click.Context):
    """Check that services are running and Ollama lists its models."""
    result = _run(ctx, "verify")

    table = Table(title="Service Status")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    state = result.summary.get('services', 'unknown')
    table.add_row("Services", f"[green]{state}[/green]" if state == "running" else f"[red]{state}[/red]")
    models = result.summary.get('models')
    table.add_row("Models", str(models) if models is not None else "[red]unavailable[/red]")
    running = result.summary.get('running_services') or []
    table.add_row("Running services", ", ".join(running) or "-")
    console.print(table)


if __name__ == '__main__':
    main()
