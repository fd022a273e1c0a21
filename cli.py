# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Tagmigrate CLI - Command Line Interface for tagged deployment and auto-migration"""

import json
import logging
import sys
from pathlib import Path

import click

# Force UTF-8 encoding for Windows
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from tagmigrate import __version__
from tagmigrate.core.config import ensure_directories, load_config
from tagmigrate.core.engine import WorkflowEngine
from tagmigrate.core.exceptions import (
    DeploymentBatchError,
    MigrationPassError,
    TagMigrateError,
)
from tagmigrate.core.logger import setup_logging
from tagmigrate.core.versioning.resource_names import parse_version_tag

logger = logging.getLogger("tagmigrate.cli")


def _fail(error: TagMigrateError):
    click.echo(f"[-] Error: {error.message}", err=True)
    sys.exit(1)


def _open_engine(ctx: click.Context) -> WorkflowEngine:
    try:
        return WorkflowEngine(config=ctx.obj["config"])
    except TagMigrateError as e:
        _fail(e)


@click.group()
@click.version_option(version=__version__)
@click.option("--db", type=click.Path(dir_okay=False), help="Engine database file")
@click.option(
    "--config", "config_file", type=click.Path(exists=True, dir_okay=False),
    help="Config file (YAML)",
)
@click.option("--migrations", help="Migrations to load, as 'package.module:attribute'")
@click.pass_context
def cli(ctx: click.Context, db: str, config_file: str, migrations: str):
    """Tagmigrate - version-tag-aware deployment and auto-migration.

    Definitions are deployed one deployment per version tag (taken from
    the resource file names), and running instances are moved along the
    registered migrations.

    Core commands:
        tagmigrate deploy     - Deploy BPMN resources
        tagmigrate migrate    - Run one auto-migration pass
    """
    try:
        config = load_config(Path(config_file) if config_file else None)
    except TagMigrateError as e:
        _fail(e)

    if db:
        config.paths.database = Path(db)
    if migrations:
        config.migration.migrations = migrations

    setup_logging(config)
    ensure_directories(config)
    ctx.obj = {"config": config}


# =============================================================================
# Deployment and migration
# =============================================================================


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--name", "-n", help="Deployment name (defaults to config)")
@click.option("--tenant", "-t", "tenant_id", help="Tenant id")
@click.option("--all", "deploy_all", is_flag=True, help="Redeploy every resource of a changed version")
@click.option("--migrate", "run_migration", is_flag=True, help="Run an auto-migration pass afterwards")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def deploy(ctx, paths, name, tenant_id, deploy_all, run_migration, as_json):
    """Deploy BPMN resources grouped by version tag.

    Examples:
        tagmigrate deploy bpmn/invoice-1.0.0.bpmn bpmn/invoice-1.1.0.bpmn
        tagmigrate deploy bpmn/*.bpmn --migrate
    """
    with _open_engine(ctx) as engine:
        failed = None
        try:
            definitions = engine.deploy_files(
                paths,
                name=name,
                tenant_id=tenant_id,
                deploy_changed_only=False if deploy_all else None,
            )
        except DeploymentBatchError as e:
            definitions = e.deployed
            failed = e
        except TagMigrateError as e:
            _fail(e)

        advisories = engine.coordinator.advisories

        if as_json:
            click.echo(
                json.dumps(
                    {
                        "definitions": [d.model_dump(mode="json") for d in definitions],
                        "advisories": [a.to_dict() for a in advisories],
                        "errors": [err.to_dict() for err in failed.errors] if failed else [],
                    },
                    indent=2,
                    default=str,
                )
            )
        else:
            click.echo(f"[+] Deployed {len(definitions)} definition(s)")
            for definition in definitions:
                click.echo(
                    f"    {definition.key:<30} {str(definition.version_tag):<16} {definition.version}"
                )
            for advisory in advisories:
                click.echo(
                    f"[!] {len(advisory.instances)} instance(s) remain on older "
                    f"definitions of {advisory.definition.key} #{advisory.definition.version_tag}"
                )
            if failed:
                for err in failed.errors:
                    click.echo(f"[-] {err.message}", err=True)

        if failed:
            sys.exit(1)

        if run_migration:
            _run_migration(engine, as_json)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def migrate(ctx, as_json):
    """Run one auto-migration pass over all deployed keys."""
    with _open_engine(ctx) as engine:
        _run_migration(engine, as_json)


def _run_migration(engine: WorkflowEngine, as_json: bool):
    failed = None
    try:
        result = engine.migrate()
    except MigrationPassError as e:
        result = e.result
        failed = e
    except TagMigrateError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        click.echo(
            f"[+] Migrated {len(result.migrated_instances)} instance(s), "
            f"{result.total_hops} migration(s) applied"
        )
        if result.skipped_keys:
            click.echo(f"    No migrations for: {', '.join(result.skipped_keys)}")
        if failed:
            for failure in failed.failures:
                click.echo(f"[-] {failure.message}", err=True)

    if failed:
        sys.exit(1)


# =============================================================================
# Inspection
# =============================================================================


@cli.command()
@click.argument("key")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def definitions(ctx, key, as_json):
    """List the definitions of a key in ordering-value order."""
    with _open_engine(ctx) as engine:
        items = engine.definitions(key)

    if as_json:
        click.echo(json.dumps([d.model_dump(mode="json") for d in items], indent=2))
        return

    if not items:
        click.echo(f"No definitions deployed for {key}.")
        return

    click.echo("=" * 80)
    click.echo(f"{'VERSION':<12} {'TAG':<20} {'RESOURCE':<46}")
    click.echo("=" * 80)
    for d in items:
        click.echo(f"{d.version:<12} {str(d.version_tag):<20} {str(d.resource_name):<46}")
    click.echo("=" * 80)


@cli.command()
@click.argument("key")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def instances(ctx, key, as_json):
    """List running instances of a key."""
    with _open_engine(ctx) as engine:
        items = engine.instances(key)

    if as_json:
        click.echo(json.dumps([i.model_dump(mode="json") for i in items], indent=2))
        return

    if not items:
        click.echo(f"No running instances of {key}.")
        return

    for instance in items:
        started = instance.started_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"{instance.id}  {instance.definition_id}  {started}")


@cli.command("start-instance")
@click.argument("key")
@click.option("--tag", "version_tag", help="Version tag (defaults to the latest definition)")
@click.option("--business-key", "-b", help="Business key")
@click.pass_context
def start_instance(ctx, key, version_tag, business_key):
    """Start a running instance of a key."""
    with _open_engine(ctx) as engine:
        try:
            instance = engine.start_instance(key, version_tag=version_tag, business_key=business_key)
        except TagMigrateError as e:
            _fail(e)

    click.echo(f"[+] Started {instance.id} on {instance.definition_id}")


@cli.command("cancel-instance")
@click.argument("instance_id")
@click.pass_context
def cancel_instance(ctx, instance_id):
    """Remove a running instance.

    Example:
      tagmigrate cancel-instance 550e8400-e29b-41d4-a716-446655440000
    """
    with _open_engine(ctx) as engine:
        try:
            engine.cancel_instance(instance_id)
        except TagMigrateError as e:
            _fail(e)

    click.echo(f"[+] Cancelled instance: {instance_id}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx, as_json):
    """Show deployment and running instance counts."""
    with _open_engine(ctx) as engine:
        counts = engine.status()

    if as_json:
        click.echo(json.dumps(counts, indent=2))
        return

    click.echo(f"Deployments: {counts['deployments']}")
    for key, count in counts["instances"].items():
        click.echo(f"    {key:<30} {count} running")


@cli.command("parse-name")
@click.argument("name")
def parse_name(name):
    """Show the version tag encoded in a resource file name."""
    try:
        tag = parse_version_tag(name)
    except TagMigrateError as e:
        _fail(e)

    click.echo(tag if tag is not None else "(no version)")


if __name__ == "__main__":
    cli()
