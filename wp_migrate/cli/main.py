"""
Main CLI entry point for wp-migrate.

Each run mode is a subcommand of the ``wp-migrate`` group:

    wp-migrate push --dest-host user@host --dest-root /var/www/site
    wp-migrate archive --archive backup.zip [--archive-type duplicator]
    wp-migrate rollback [--rollback-backup db-backups/file.sql.gz]
    wp-migrate backup --source-host user@host --source-root /var/www/site

Flags given on the command line override values from ``~/.wp-migrate.yaml``
(or the file passed with ``--config``).
"""

import asyncio
import logging
import sys
from typing import Any, Callable, Dict, Optional, Type

import click
from click.core import ParameterSource
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from wp_migrate import __version__
from wp_migrate.core.exceptions import UserDeclined, WPMigrateError
from wp_migrate.models.config import (
    ADAPTER_NAMES,
    DEFAULT_BACKUP_OUTPUT_DIR,
    ArchiveOptions,
    BackupOptions,
    CommonOptions,
    PushOptions,
    RollbackOptions,
    build_options,
    load_config_file,
)
from wp_migrate.orchestrator import (
    ArchiveImport,
    BackupCreation,
    MigrationOrchestrator,
    PushMigration,
    RollbackRun,
)
from wp_migrate.utils.logging import run_log_path, setup_logging

console = Console()

logger = logging.getLogger(__name__)

# Parameters that are not option-model fields.
CLI_ONLY_PARAMS = {"config", "duplicator_archive"}


def common_options(func: Callable) -> Callable:
    """Attach the options every run mode shares."""
    options = [
        click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
                     help='Options file (default: ~/.wp-migrate.yaml)'),
        click.option('--dry-run', is_flag=True, help='Preview every step without changing anything'),
        click.option('--yes', '-y', is_flag=True, help='Skip the confirmation prompt'),
        click.option('--quiet', '-q', is_flag=True, help='Hide progress spinners'),
        click.option('--verbose', is_flag=True, help='Enable debug logging'),
        click.option('--trace', is_flag=True, help='Log every external command (implies --verbose)'),
        click.option('--import-db/--no-import-db', 'import_db', default=True,
                     help='Import the database (default: on)'),
        click.option('--search-replace/--no-search-replace', 'search_replace', default=True,
                     help='Run URL search-replace after import (default: on)'),
        click.option('--stellarsites', is_flag=True,
                     help='Managed-host mode: keep mu-plugins, implies --preserve-dest-plugins'),
        click.option('--preserve-dest-plugins', is_flag=True,
                     help='Restore destination-only plugins and themes after the content copy'),
        click.option('--wp-root', type=click.Path(file_okay=False),
                     help='Local WordPress root (default: current directory)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def collect_overrides(ctx: click.Context) -> Dict[str, Any]:
    """Return only the parameters the operator actually typed."""
    overrides = {}
    for name, value in ctx.params.items():
        if name in CLI_ONLY_PARAMS:
            continue
        if ctx.get_parameter_source(name) != ParameterSource.COMMANDLINE:
            continue
        overrides[name] = list(value) if isinstance(value, tuple) else value
    return overrides


def print_error(error: WPMigrateError):
    """Render a WPMigrateError as a Rich panel."""
    body = Text(str(error), style="bold red")
    if error.hint:
        body.append("\n\n")
        body.append(error.hint, style="yellow")
    console.print(Panel(body, title=f"Error: {error.code}", border_style="red", expand=False))


def run_mode(
    ctx: click.Context,
    model: Type[CommonOptions],
    orchestrator_class: Type[MigrationOrchestrator],
    extra: Optional[Dict[str, Any]] = None
):
    """
    Build options for one mode, set up logging and drive the orchestrator.

    Exit status: 0 on success or a declined prompt, 1 on any tool error,
    130 on interrupt.
    """
    try:
        overrides = collect_overrides(ctx)
        overrides.update(extra or {})
        options = build_options(model, load_config_file(ctx.params.get('config')), overrides)
        if ctx.obj.get('verbose'):
            options.verbose = True

        orchestrator = orchestrator_class(options, console=console)
        log_file = None
        if not options.dry_run:
            log_file = run_log_path(orchestrator.mode.value, orchestrator.run.stamp)
        setup_logging(
            level="DEBUG" if options.verbose else "INFO",
            log_file=log_file,
            console=Console(stderr=True)
        )
        if log_file:
            logger.info(f"Log file: {log_file}")
        if options.dry_run:
            console.print("[cyan]DRY RUN: no changes will be made[/cyan]")

        run = asyncio.run(orchestrator.execute())
    except UserDeclined as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        sys.exit(0)
    except WPMigrateError as e:
        print_error(e)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; cleanup has run.[/yellow]")
        sys.exit(130)

    console.print(f"[green]Finished: {run.mode.value} ({run.state.value})[/green]")


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool):
    """
    wp-migrate

    Move a WordPress site between hosts, or restore one from a Duplicator,
    Jetpack, Solid Backups or wp-migrate archive, with an automatic backup
    and rollback path.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    if version:
        console.print(f"wp-migrate version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@main.command()
@common_options
@click.option('--dest-host', help='Destination SSH host (user@host)')
@click.option('--dest-root', help='Absolute WordPress root on the destination')
@click.option('--gzip/--no-gzip', 'gzip_db', default=True, help='Compress the database dump (default: on)')
@click.option('--maint-source/--no-maint-source', 'maintenance_source', default=True,
              help='Put the source in maintenance mode too (default: on)')
@click.option('--dest-domain', help='Destination domain; fills --dest-home-url and --dest-site-url')
@click.option('--dest-home-url', help='Override the destination home URL')
@click.option('--dest-site-url', help='Override the destination siteurl')
@click.option('--ssh-opt', 'ssh_opts', multiple=True, help='Extra ssh -o option (repeatable)')
@click.option('--rsync-opt', 'rsync_opts', multiple=True, help='Extra rsync option (repeatable)')
@click.pass_context
def push(ctx: click.Context, **kwargs):
    """Push the local site's database and wp-content to a remote host."""
    run_mode(ctx, PushOptions, PushMigration)


@main.command()
@common_options
@click.option('--archive', '-a', 'archive', type=click.Path(), help='Backup archive (zip, tar, tar.gz or directory)')
@click.option('--archive-type', type=click.Choice(ADAPTER_NAMES), help='Skip detection and use this format')
@click.option('--duplicator-archive', type=click.Path(), help='Deprecated: same as --archive PATH --archive-type duplicator')
@click.pass_context
def archive(ctx: click.Context, duplicator_archive: Optional[str], **kwargs):
    """Import a backup archive into the local WordPress install."""
    extra = {}
    if duplicator_archive:
        console.print(
            "[yellow]--duplicator-archive is deprecated; use --archive PATH --archive-type duplicator[/yellow]"
        )
        extra = {"archive": duplicator_archive, "archive_type": "duplicator"}
    run_mode(ctx, ArchiveOptions, ArchiveImport, extra)


@main.command()
@common_options
@click.option('--rollback-backup', type=click.Path(), help='Database dump to restore instead of the latest')
@click.pass_context
def rollback(ctx: click.Context, **kwargs):
    """Restore the backups taken by the last archive import."""
    run_mode(ctx, RollbackOptions, RollbackRun)


@main.command()
@common_options
@click.option('--source-host', help='Source SSH host (user@host)')
@click.option('--source-root', help='Absolute WordPress root on the source')
@click.option('--output-dir', 'backup_output_dir',
              help=f'Archive directory on the source (default: {DEFAULT_BACKUP_OUTPUT_DIR})')
@click.option('--ssh-opt', 'ssh_opts', multiple=True, help='Extra ssh -o option (repeatable)')
@click.pass_context
def backup(ctx: click.Context, **kwargs):
    """Create a wp-migrate archive of a remote site."""
    run_mode(ctx, BackupOptions, BackupCreation)


if __name__ == "__main__":
    main()
