"""
Command Line Interface for dorch.
"""
import os

import click

from ..ENGINE.docker_client import DockerEngineClient
from ..ENGINE.errors import EngineError, OrchestrationError
from ..MANAGERS.inclusion import ANY, only
from ..MANAGERS.orchestrator import DockerOrchestrator
from ..MODELS.container_conf import BuildFlag
from ..PARSERS.manifest_parser import ManifestParser
from ..UTILS.logging_setup import setup_logging

NOT_RUNNING_EXIT_CODE = 3


@click.group()
@click.option('--file', '-f', default='dorch.yml', help='Manifest file path')
@click.option('--only', 'only_ids', multiple=True, metavar='ID', help='Only include this container (repeatable)')
@click.option('--no-cache', is_flag=True, help='Build without the layer cache')
@click.option('--rm/--no-rm', default=False, help='Remove intermediate images after a build')
@click.option('--quiet', is_flag=True, help='Suppress verbose build output')
@click.option('--tolerate-permission-errors', is_flag=True, help='Ignore permission errors when removing containers')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, file, only_ids, no_cache, rm, quiet, tolerate_permission_errors, verbose):
    """
    dorch - build, start, stop, clean and push a set of linked Docker containers.

    Containers are declared in order in a dorch.yml manifest.
    """
    setup_logging(verbose=verbose)
    flags = set()
    if no_cache:
        flags.add(BuildFlag.NO_CACHE)
    if rm:
        flags.add(BuildFlag.REMOVE_INTERMEDIATE_IMAGES)
    if quiet:
        flags.add(BuildFlag.QUIET)

    ctx.ensure_object(dict)
    ctx.obj['file'] = file
    ctx.obj['filter'] = only(only_ids) if only_ids else ANY
    ctx.obj['build_flags'] = frozenset(flags)
    ctx.obj['tolerant'] = True if tolerate_permission_errors else None


def _orchestrator(ctx) -> DockerOrchestrator:
    """
    Parses the manifest and connects to the engine on first use.
    """
    obj = ctx.obj
    if 'orchestrator' in obj:
        return obj['orchestrator']
    file = obj['file']
    if not os.path.exists(file):
        click.echo(f"Error: {file} not found.")
        ctx.exit(1)
    config = ManifestParser().parse(file)
    client = obj.get('client') or DockerEngineClient.from_env()
    obj['orchestrator'] = DockerOrchestrator.from_config(
        config,
        client,
        base_dir=os.path.dirname(os.path.abspath(file)),
        extra_build_flags=obj['build_flags'],
        permission_error_tolerant=obj['tolerant'],
        definition_filter=obj['filter'],
    )
    return obj['orchestrator']


def _run(ctx, action):
    try:
        return action(_orchestrator(ctx))
    except (OrchestrationError, EngineError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


@cli.command()
@click.argument('id', required=False)
@click.pass_context
def build(ctx, id):
    """Build images, or only the image of ID."""
    _run(ctx, lambda orchestrator: orchestrator.build(id))
    click.echo("Images built.")


@cli.command()
@click.pass_context
def start(ctx):
    """Start containers in manifest order, building missing images."""
    _run(ctx, lambda orchestrator: orchestrator.start())
    click.echo("Containers started.")


@cli.command()
@click.pass_context
def stop(ctx):
    """Stop running containers."""
    _run(ctx, lambda orchestrator: orchestrator.stop())
    click.echo("Containers stopped.")


@cli.command()
@click.pass_context
def clean(ctx):
    """Stop and remove containers and images."""
    failures = _run(ctx, lambda orchestrator: orchestrator.clean())
    for failure in failures:
        click.echo(f"Warning: {failure}")
    click.echo("Containers and images removed.")


@cli.command()
@click.pass_context
def push(ctx):
    """Push images to their repositories."""
    _run(ctx, lambda orchestrator: orchestrator.push())
    click.echo("Images pushed.")


@cli.command()
@click.pass_context
def validate(ctx):
    """Validate the Dockerfiles without touching the engine."""
    _run(ctx, lambda orchestrator: orchestrator.validate())
    click.echo("Configuration is valid.")


@cli.command()
@click.pass_context
def status(ctx):
    """Report whether every included container is running."""
    running = _run(ctx, lambda orchestrator: orchestrator.is_running())
    click.echo("running" if running else "not running")
    if not running:
        ctx.exit(NOT_RUNNING_EXIT_CODE)


@cli.command()
@click.pass_context
def ips(ctx):
    """List container IP addresses."""
    addresses = _run(ctx, lambda orchestrator: orchestrator.get_ip_addresses())
    for id, ip in addresses.items():
        click.echo(f"{id} {ip}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
