"""
Main CLI entry point for Hydra migration.

This module provides the hydra-migrate command using Click with Rich
formatting. The restore command is also what a source host runs on the
destination over SSH to unpack a transferred archive.
"""

import asyncio
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from hydra_migration import __version__
from hydra_migration.archive import restore_containers
from hydra_migration.core.exceptions import ConfigurationError, HydraMigrationError
from hydra_migration.driver import MigrationDriver, OutcomeStatus
from hydra_migration.migration.docker import DockerMigration
from hydra_migration.models.checkpoint import CheckpointBatch
from hydra_migration.models.config import MigrationConfig
from hydra_migration.providers import create_provider
from hydra_migration.utils.helpers import format_duration
from hydra_migration.utils.logging import setup_logging

console = Console()


def _load_config(ctx: click.Context) -> MigrationConfig:
    """Build the configuration once; a missing DOCKER_HOST stops the process."""
    if 'config' not in ctx.obj:
        config_path = ctx.obj.get('config_path')
        try:
            if config_path:
                ctx.obj['config'] = MigrationConfig.from_file(config_path)
            else:
                ctx.obj['config'] = MigrationConfig.from_env()
        except ConfigurationError as e:
            console.print(f"[red]Configuration error: {e.message}[/red]")
            sys.exit(2)
    return ctx.obj['config']


def _print_batch(batch: CheckpointBatch) -> None:
    table = Table(title=f"Checkpoint batch {batch.batch_id}")
    table.add_column("Container", style="cyan")
    table.add_column("Checkpoint")
    table.add_column("Status")

    for result in batch.results:
        status = "[green]ok[/green]" if result.success else f"[red]{result.error}[/red]"
        table.add_row(result.container_id[:12], result.checkpoint_name, status)

    console.print(table)


@click.group()
@click.version_option(__version__, prog_name="hydra-migrate")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='Configuration file path')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level')
@click.option('--log-file', type=click.Path(), help='Write logs to this file as well')
@click.option('--structured-logs', is_flag=True, help='Emit JSON log lines')
@click.option('--verbose', '-v', is_flag=True, help='Shorthand for --log-level DEBUG')
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], log_level: str,
         log_file: Optional[str], structured_logs: bool, verbose: bool):
    """
    Hydra container migration.

    Checkpoints running containers and relocates them to another host
    before the current one is reclaimed.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    setup_logging(level='DEBUG' if verbose else log_level, log_file=log_file, structured_logging=structured_logs)


@main.command()
@click.pass_context
def checkpoint(ctx: click.Context):
    """Checkpoint every running container."""
    config = _load_config(ctx)
    migration = DockerMigration(config)

    try:
        batch = asyncio.run(migration.checkpoint_all_containers())
    except HydraMigrationError as e:
        console.print(f"[red]Checkpoint failed: {e}[/red]")
        sys.exit(1)
    finally:
        migration.close()

    _print_batch(batch)
    if not batch.success:
        sys.exit(1)


@main.command()
@click.argument('destination')
@click.option('--skip-checkpoint', is_flag=True, help='Transfer the live state directory without checkpointing')
@click.pass_context
def migrate(ctx: click.Context, destination: str, skip_checkpoint: bool):
    """Checkpoint containers and migrate them to DESTINATION."""
    config = _load_config(ctx)
    migration = DockerMigration(config)

    async def _run():
        if not skip_checkpoint:
            await migration.checkpoint()
        await migration.migrate(destination)

    try:
        asyncio.run(_run())
    except HydraMigrationError as e:
        console.print(f"[red]Migration failed: {e}[/red]")
        if migration.last_batch is not None:
            _print_batch(migration.last_batch)
        sys.exit(1)
    finally:
        migration.close()

    console.print(f"[green]Migrated {len(migration.checkpoints)} containers to {destination}[/green]")


@main.command()
@click.argument('archive', type=click.Path(exists=True, dir_okay=False))
@click.argument('destination', type=click.Path(file_okay=False))
def restore(archive: str, destination: str):
    """Extract ARCHIVE into DESTINATION."""
    try:
        written = restore_containers(archive, destination)
    except HydraMigrationError as e:
        console.print(f"[red]Restore failed: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]Restored {len(written)} entries into {destination}[/green]")


@main.command()
@click.option('--destination', '-d', help='Destination host address')
@click.option('--target-instance', '-t', help='Provider instance to start and migrate to')
@click.pass_context
def watch(ctx: click.Context, destination: Optional[str], target_instance: Optional[str]):
    """Wait for a termination signal, then migrate within the lead time."""
    config = _load_config(ctx)
    destination = destination or config.provider.destination
    target_instance = target_instance or config.provider.target_instance_id

    try:
        provider = create_provider(config.provider)
        migration = DockerMigration(config)
        driver = MigrationDriver(migration, provider, destination=destination,
                                 target_instance_id=target_instance)
    except HydraMigrationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    console.print(f"[cyan]Watching for termination signals ({config.provider.type.value})[/cyan]")
    try:
        outcome = asyncio.run(driver.run_once())
    except HydraMigrationError as e:
        console.print(f"[red]Watch failed: {e}[/red]")
        sys.exit(1)
    finally:
        migration.close()

    if outcome.status == OutcomeStatus.COMPLETED:
        console.print(f"[green]Migrated to {outcome.destination} in {format_duration(outcome.elapsed)} "
                      f"(budget {format_duration(outcome.lead_time.total_seconds())})[/green]")
    else:
        console.print(f"[red]Migration {outcome.status.value}: {outcome.error}[/red]")
        sys.exit(1)


@main.command(name='start-instance')
@click.argument('instance_id')
@click.pass_context
def start_instance(ctx: click.Context, instance_id: str):
    """Start INSTANCE_ID through the configured provider and print its address."""
    config = _load_config(ctx)

    try:
        provider = create_provider(config.provider)
        address = asyncio.run(provider.start_instance(instance_id))
    except HydraMigrationError as e:
        console.print(f"[red]Failed to start instance: {e}[/red]")
        sys.exit(1)

    console.print(str(address))


if __name__ == '__main__':
    main()
