"""Command line entry point for the projecthub server."""

import asyncio

import click

from projecthub import __version__
from projecthub.core import get_settings
from projecthub.tracker import TrackerService, TrackerStores


@click.group()
@click.version_option(version=__version__, prog_name="projecthub")
def cli():
    pass


@cli.command()
@click.option("--host", default=None, help="Interface to bind. Defaults to PROJECTHUB_API__HOST.")
@click.option("--port", default=None, type=int, help="Port to bind. Defaults to PROJECTHUB_API__PORT.")
@click.option(
    "--store",
    type=click.Choice(["memory", "mongo"]),
    default=None,
    help="Entity store backend. Defaults to PROJECTHUB_API__STORE.",
)
def serve(host, port, store):
    """Run the tracker HTTP API."""
    import uvicorn

    from projecthub.services import create_app

    settings = get_settings()
    api = settings.PROJECTHUB_API
    store = store or api.STORE
    if store == "memory":
        stores = TrackerStores.in_memory()
        click.echo("Using the in-memory store; data is lost when the server stops.")
    else:
        stores = TrackerStores.mongo(settings.PROJECTHUB_MONGO.URI, settings.PROJECTHUB_MONGO.DB_NAME)
    uvicorn.run(create_app(TrackerService(stores)), host=host or api.HOST, port=port or api.PORT)


@cli.command("repair-project")
@click.argument("project_id")
def repair_project(project_id):
    """Re-link every owner and client of PROJECT_ID back to the project."""
    service = TrackerService(TrackerStores.from_settings(get_settings()))
    view = asyncio.run(service.repair_project(project_id))
    if view is None:
        raise click.ClickException(f"Project {project_id} not found.")
    members = len(view.owners) + len(view.clients)
    click.echo(f"Repaired project {view.id} ({view.title}): {members} member(s) linked.")


if __name__ == "__main__":
    cli()
