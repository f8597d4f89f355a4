"""Terminal UI components and formatting."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.markup import escape
from rich import box
from typing import Dict, Any, List, Optional
from datetime import datetime


console = Console()

TYPE_COLORS = {
    "Structure Fire": "red",
    "Vehicle Fire": "yellow",
    "Wildfire": "green",
    "Electrical Fire": "cyan",
    "Chemical Fire": "magenta",
    "Other": "white",
}


def print_error(message: str):
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_success(message: str):
    """Print a success message."""
    console.print(f"[bold green]✓[/bold green] {escape(message)}")


def print_info(message: str):
    """Print an info message."""
    console.print(f"[bold blue]ℹ[/bold blue] {escape(message)}")


def format_type(incident_type: str) -> str:
    """Format incident type with color."""
    color = TYPE_COLORS.get(incident_type, "white")
    return f"[{color}]{escape(incident_type)}[/{color}]"


def format_timestamp(timestamp: str) -> str:
    """Format ISO timestamp to readable format."""
    try:
        dt = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, AttributeError):
        return timestamp


def image_url(base_url: str, image: Optional[str]) -> Optional[str]:
    if not image:
        return None
    return f"{base_url.rstrip('/')}{image}"


def format_incident(incident: Dict[str, Any], base_url: Optional[str] = None) -> Panel:
    """
    Format incident data for display.

    Args:
        incident: Incident data dictionary
        base_url: API base URL used to turn the image path into a link

    Returns:
        Rich Panel with formatted incident
    """
    lines = []

    lines.append(f"[bold]Incident ID:[/bold] {incident['id']}")
    lines.append(f"[bold]Title:[/bold] {escape(incident['title'])}")
    lines.append(f"[bold]Type:[/bold] {format_type(incident['incident_type'])}")
    lines.append(f"[bold]Reported:[/bold] {format_timestamp(incident['created_at'])}")

    if incident.get("location"):
        lines.append(f"[bold]Location:[/bold] {escape(incident['location'])}")

    if incident.get("description"):
        lines.append("")
        lines.append("[bold]Description:[/bold]")
        lines.append(escape(incident["description"]))

    if incident.get("image"):
        lines.append("")
        link = image_url(base_url, incident["image"]) if base_url else incident["image"]
        lines.append(f"[bold]Image:[/bold] {escape(link)}")

    return Panel(
        "\n".join(lines),
        title=f"Incident {incident['id'][:8]}",
        border_style="red",
        box=box.ROUNDED,
    )


def print_incident_table(incidents: List[Dict[str, Any]]):
    """
    Print a table of incidents.

    Args:
        incidents: List of incident dictionaries, newest first
    """
    if not incidents:
        print_info("No incidents found.")
        return

    table = Table(title="Fire Incidents", box=box.ROUNDED)

    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Type")
    table.add_column("Location", style="white")
    table.add_column("Image", justify="center")
    table.add_column("Reported", style="green")

    for incident in incidents:
        title = incident["title"]
        if len(title) > 40:
            title = title[:40] + "..."
        table.add_row(
            incident["id"][:8] + "...",
            escape(title),
            format_type(incident["incident_type"]),
            escape(incident.get("location") or "-"),
            "yes" if incident.get("image") else "-",
            format_timestamp(incident["created_at"]),
        )

    console.print(table)


def print_api_error(error) -> None:
    """Print an ApiError with its user-facing explanation and any field problems."""
    print_error(error.user_friendly_message())
    if error.is_rate_limit and error.retry_after:
        print_info(f"Retry after {error.retry_after} seconds")


def show_progress() -> Progress:
    """
    Create a progress indicator context manager.

    Returns:
        Progress context manager
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )
