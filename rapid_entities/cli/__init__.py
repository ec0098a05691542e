"""
Command Line Interface for Rapid Entities.
"""

import asyncio
import logging
import sys
from typing import Optional

import structlog
import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings, get_settings
from ..db.base import create_engine_for_url, get_database_url, init_database
from ..errors import EntityEngineError
from ..schema.models import ManyForeignKey, ManyLinkTable, OwningOne
from ..schema.registry import ModelRegistry

app = typer.Typer(help="Rapid Entities - relation-aware entity data manager")
console = Console()


def _load_registry(schema: Optional[str]) -> ModelRegistry:
    path = schema or get_settings().schema_path
    if not path:
        console.print("❌ No schema given, use --schema or SCHEMA_PATH")
        raise typer.Exit(code=1)
    try:
        return ModelRegistry.from_json_file(path)
    except EntityEngineError as e:
        console.print(f"❌ Invalid schema: {e.message}")
        raise typer.Exit(code=1)


def _configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def _describe_relation(kind) -> str:
    if isinstance(kind, OwningOne):
        return f"one -> {kind.target_singular_code} via {kind.target_id_column_name}"
    if isinstance(kind, ManyForeignKey):
        return f"many -> {kind.target_singular_code} via {kind.target_singular_code}.{kind.self_id_column_name}"
    if isinstance(kind, ManyLinkTable):
        return (
            f"many -> {kind.target_singular_code} via link table {kind.link_table_name}"
            f"({kind.self_id_column_name}, {kind.target_id_column_name})"
        )
    return ""


@app.command()
def describe(
    schema: Optional[str] = typer.Option(None, help="JSON file of model definitions"),
):
    """Show the models of a schema and how their relations are stored."""
    registry = _load_registry(schema)

    for model in registry.models:
        table = Table(
            title=f"{model.full_code} ({registry.table_for(model).name})",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Property", style="cyan")
        table.add_column("Type")
        table.add_column("Storage")
        for prop in model.properties:
            if prop.is_relation:
                table.add_row(prop.code, "relation", _describe_relation(prop.relation_kind))
            else:
                table.add_row(prop.code, prop.type, prop.column)
        console.print(table)


@app.command("init-db")
def init_db(
    schema: Optional[str] = typer.Option(None, help="JSON file of model definitions"),
    database_url: Optional[str] = typer.Option(None, help="Database URL, defaults to DATABASE_URL"),
):
    """Create the tables of every model and link table of a schema."""
    registry = _load_registry(schema)
    url = database_url or get_settings().database_url
    engine = create_engine_for_url(url)

    async def run():
        try:
            await init_database(engine, registry)
        finally:
            await engine.dispose()

    asyncio.run(run())
    rprint(Panel.fit(f"✅ Created {len(registry.metadata.tables)} tables", style="bold green"))
    for name in sorted(registry.metadata.tables):
        console.print(f"  • {name}")
    console.print(f"Database: {get_database_url(url)}")


@app.command()
def serve(
    port: int = typer.Option(8000, help="Port to run the API server on"),
    host: str = typer.Option("0.0.0.0", help="Host to bind the server to"),
    schema: Optional[str] = typer.Option(None, help="JSON file of model definitions"),
):
    """Start the data manager API."""
    from ..api import create_app

    settings = get_settings()
    if schema:
        settings = settings.model_copy(update={"schema_path": schema})
    if not settings.schema_path:
        console.print("❌ No schema given, use --schema or SCHEMA_PATH")
        raise typer.Exit(code=1)

    _configure_logging(settings)
    rprint(Panel.fit("🚀 Starting Rapid Entities", style="bold blue"))
    uvicorn.run(create_app(settings=settings), host=host, port=port, log_level=settings.log_level.lower())


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    rprint(Panel.fit(f"Rapid Entities v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
