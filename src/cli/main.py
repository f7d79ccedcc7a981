"""Main CLI entry point using Typer."""

import logging

import typer
from rich.console import Console

from src.db.database import init_db
from src.config import PRODUCT_NAME, PRODUCT_TAGLINE, PRODUCT_VERSION, get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

console = Console()
app = typer.Typer(
    name="flightform",
    help=f"{PRODUCT_NAME}: {PRODUCT_TAGLINE}",
    add_completion=False,
)


@app.callback()
def main_callback():
    """Initialize database on startup."""
    init_db()


# Import and add subcommands
from src.cli.forms import app as forms_app

app.add_typer(forms_app, name="forms", help="Build, evaluate and submit conditional forms")


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold #0EA5E9]{PRODUCT_NAME}[/] {PRODUCT_VERSION}")
    console.print(f"[bold]Tagline:[/] {PRODUCT_TAGLINE}")


if __name__ == "__main__":
    app()
