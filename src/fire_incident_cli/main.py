"""Main CLI entry point with command definitions."""

import click
import asyncio
from pathlib import Path
from typing import Optional, Dict, Any

from .client import (
    IncidentClient,
    ApiConnectionError,
    ApiError,
    IncidentClientError,
)
from .config import Config, ConfigError
from .ui import (
    console,
    print_error,
    print_success,
    print_info,
    print_api_error,
    format_incident,
    print_incident_table,
    show_progress,
)

INCIDENT_TYPES = [
    "Structure Fire",
    "Vehicle Fire",
    "Wildfire",
    "Electrical Fire",
    "Chemical Fire",
    "Other",
]

url_option = click.option("--url", help="API base URL (overrides config)")
token_option = click.option("--token", help="API bearer token (overrides config)")


def incident_fields_options(func):
    """Shared options for create and update."""
    options = [
        click.option("--title", required=True, help="Short incident title (max 255 chars)"),
        click.option(
            "--type",
            "incident_type",
            required=True,
            type=click.Choice(INCIDENT_TYPES, case_sensitive=False),
            help="Incident type",
        ),
        click.option("--description", help="Free-text description"),
        click.option("--location", help="Where the incident happened"),
        click.option(
            "--image",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Image file to attach (.jpg, .jpeg, .png, .gif)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def get_client(url: Optional[str], token: Optional[str]) -> IncidentClient:
    """Create an API client from config plus command-line overrides."""
    config = Config()
    return IncidentClient(base_url=config.api_url(url), api_token=config.api_token(token))


def _canonical_type(incident_type: str) -> str:
    for known in INCIDENT_TYPES:
        if known.lower() == incident_type.lower():
            return known
    return incident_type


def _build_fields(
    title: str,
    incident_type: str,
    description: Optional[str],
    location: Optional[str],
) -> Dict[str, Any]:
    return {
        "title": title,
        "incident_type": _canonical_type(incident_type),
        "description": description,
        "location": location,
    }


async def _run(action) -> bool:
    """Run a client action and report failures; returns True on success."""
    try:
        await action()
        return True
    except ConfigError as e:
        print_error(str(e))
    except ApiError as e:
        print_api_error(e)
    except ApiConnectionError as e:
        print_error(str(e))
    except IncidentClientError as e:
        print_error(str(e))
    return False


def _finish(ok: bool):
    if not ok:
        raise SystemExit(1)


@click.group()
@click.version_option(package_name="fire-incident-reporter")
def cli():
    """Fire Incident CLI - report and manage fire incidents."""
    pass


@cli.command(name="list")
@click.option(
    "--type",
    "incident_type",
    type=click.Choice(INCIDENT_TYPES, case_sensitive=False),
    help="Only show incidents of this type",
)
@click.option("--limit", type=int, default=None, help="Maximum number of incidents to show")
@url_option
@token_option
def list_command(
    incident_type: Optional[str],
    limit: Optional[int],
    url: Optional[str],
    token: Optional[str],
):
    """List incidents, newest first."""
    _finish(asyncio.run(list_async(incident_type, limit, url, token)))


async def list_async(
    incident_type: Optional[str],
    limit: Optional[int],
    url: Optional[str],
    token: Optional[str],
) -> bool:
    """Async implementation of list command."""

    async def action():
        async with get_client(url, token) as client:
            incidents = await client.list_incidents()
        if incident_type:
            wanted = _canonical_type(incident_type)
            incidents = [i for i in incidents if i.get("incident_type") == wanted]
        if limit is not None:
            incidents = incidents[:limit]
        print_incident_table(incidents)

    return await _run(action)


@cli.command()
@click.argument("incident_id")
@url_option
@token_option
def show(incident_id: str, url: Optional[str], token: Optional[str]):
    """Show details of a specific incident."""
    _finish(asyncio.run(show_async(incident_id, url, token)))


async def show_async(incident_id: str, url: Optional[str], token: Optional[str]) -> bool:
    """Async implementation of show command."""

    async def action():
        async with get_client(url, token) as client:
            incident = await client.get_incident(incident_id)
            console.print(format_incident(incident, client.base_url))

    return await _run(action)


@cli.command()
@incident_fields_options
@url_option
@token_option
def create(
    title: str,
    incident_type: str,
    description: Optional[str],
    location: Optional[str],
    image: Optional[Path],
    url: Optional[str],
    token: Optional[str],
):
    """Report a new incident."""
    fields = _build_fields(title, incident_type, description, location)
    _finish(asyncio.run(create_async(fields, image, url, token)))


async def create_async(
    fields: Dict[str, Any],
    image: Optional[Path],
    url: Optional[str],
    token: Optional[str],
) -> bool:
    """Async implementation of create command."""

    async def action():
        async with get_client(url, token) as client:
            with show_progress() as progress:
                progress.add_task("Creating incident...", total=None)
                incident = await client.create_incident(fields, image_path=image)
            print_success(f"Incident created: {incident['id']}")
            console.print(format_incident(incident, client.base_url))

    return await _run(action)


@cli.command()
@click.argument("incident_id")
@incident_fields_options
@url_option
@token_option
def update(
    incident_id: str,
    title: str,
    incident_type: str,
    description: Optional[str],
    location: Optional[str],
    image: Optional[Path],
    url: Optional[str],
    token: Optional[str],
):
    """Update an existing incident. The current image is kept unless --image is given."""
    fields = _build_fields(title, incident_type, description, location)
    _finish(asyncio.run(update_async(incident_id, fields, image, url, token)))


async def update_async(
    incident_id: str,
    fields: Dict[str, Any],
    image: Optional[Path],
    url: Optional[str],
    token: Optional[str],
) -> bool:
    """Async implementation of update command."""

    async def action():
        async with get_client(url, token) as client:
            with show_progress() as progress:
                progress.add_task("Updating incident...", total=None)
                incident = await client.update_incident(
                    incident_id, fields, image_path=image
                )
            print_success(f"Incident updated: {incident['id']}")
            console.print(format_incident(incident, client.base_url))

    return await _run(action)


@cli.command()
@click.argument("incident_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@url_option
@token_option
def delete(incident_id: str, yes: bool, url: Optional[str], token: Optional[str]):
    """Delete an incident."""
    if not yes and not click.confirm(f"Delete incident {incident_id}?"):
        print_info("Aborted")
        return
    _finish(asyncio.run(delete_async(incident_id, url, token)))


async def delete_async(incident_id: str, url: Optional[str], token: Optional[str]) -> bool:
    """Async implementation of delete command."""

    async def action():
        async with get_client(url, token) as client:
            result = await client.delete_incident(incident_id)
        print_success(result.get("message", f"Incident {incident_id} deleted"))

    return await _run(action)


@cli.command()
@url_option
def health(url: Optional[str]):
    """Check that the API is reachable."""
    _finish(asyncio.run(health_async(url)))


async def health_async(url: Optional[str]) -> bool:
    async def action():
        async with get_client(url, None) as client:
            result = await client.health()
        print_success(f"API status: {result.get('status')} at {result.get('timestamp')}")

    return await _run(action)


@cli.group()
def config():
    """Manage CLI configuration."""
    pass


@config.command(name="set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value (api-url, api-token)."""
    try:
        cfg = Config()
        cfg.set(key, value)
        shown = "********" if Config.normalize_key(key) == "api_token" else value
        print_success(f"Configuration updated: {key} = {shown}")
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)


@config.command(name="get")
@click.argument("key")
def config_get(key: str):
    """Get a configuration value."""
    try:
        cfg = Config()
        value = cfg.get(key)
        if value:
            console.print(f"{key} = {value}")
        else:
            print_info(f"Configuration key '{key}' not set")
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)


@config.command(name="unset")
@click.argument("key")
def config_unset(key: str):
    """Remove a configuration value."""
    try:
        cfg = Config()
        cfg.delete(key)
        print_success(f"Configuration key '{key}' removed")
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)


@config.command(name="list")
def config_list():
    """List all configuration values."""
    try:
        cfg = Config()
        config_data = cfg.get_all()

        if not config_data:
            print_info("No configuration set")
            return

        console.print("[bold]Configuration:[/bold]")
        for key, value in config_data.items():
            # Mask API token
            if key == "api_token" and value:
                value = "*" * 8 + value[-4:] if len(value) > 4 else "****"
            console.print(f"  {key} = {value}")

    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
