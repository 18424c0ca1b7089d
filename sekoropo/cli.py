"""Sekoropo CLI entry point.

Provides command-line access to platform statistics and to seeding a local
DuckDB store from a JSON export.
"""

from __future__ import annotations

import asyncio
import dataclasses
import importlib.metadata
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from typing_extensions import Annotated

from sekoropo import __version__
from sekoropo.config import SekoropoConfig, get_config
from sekoropo.errors import SekoropoError
from sekoropo.main import SekoropoApplication
from sekoropo.models import ApiResult, Document
from sekoropo.storage import parse_document
from sekoropo.storage.memory_store import new_document_id

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create CLI app
app = typer.Typer(
    name="sekoropo",
    help="Sekoropo - query aggregation layer for a piece-job marketplace",
    add_completion=False,
)


class StatsKind(str, Enum):
    disputes = "disputes"
    payments = "payments"
    reviews = "reviews"


def _jsonable(value: Any) -> Any:
    """Convert documents, dataclasses and models into JSON-ready values."""
    if isinstance(value, Document):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    return value


def _load_config(config_path: str, database: str) -> SekoropoConfig:
    config = get_config(config_path or None)
    if database:
        config = config.model_copy(
            update={"store": config.store.model_copy(update={"backend": "duckdb", "path": database})}
        )
    logging.getLogger().setLevel(config.log_level.upper())
    return config


def _echo_result(result: ApiResult[Any]) -> None:
    typer.echo(json.dumps(_jsonable(result.to_dict()), indent=2, sort_keys=True))
    if not result.success:
        raise typer.Exit(code=1)


async def _run_stats(
    config: SekoropoConfig,
    kind: StatsKind,
    user: str | None,
    date_range: dict[str, str] | None,
) -> ApiResult[Any]:
    async with SekoropoApplication(config) as services:
        if kind is StatsKind.disputes:
            return await services.disputes.stats(date_range)
        if kind is StatsKind.payments:
            return await services.payments.stats(date_range)
        if user:
            return await services.reviews.rating_stats(user)
        return await services.reviews.platform_stats(date_range)


async def _seed(config: SekoropoConfig, payload: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    async with SekoropoApplication(config) as services:
        store = services.jobs.store
        for collection, documents in payload.items():
            for raw in documents:
                if "id" not in raw and "$id" not in raw:
                    raw = {**raw, "id": new_document_id()}
                document = parse_document(collection, raw)
                fields = dict(document.fields)
                if document.created_at:
                    fields["created_at"] = document.created_at
                if document.updated_at:
                    fields["updated_at"] = document.updated_at
                await store.create(collection, fields, document.id)
            counts[collection] = len(documents)
            logger.info(f"Seeded {len(documents)} documents into {collection}")
    return counts


@app.command()
def stats(
    kind: Annotated[StatsKind, typer.Argument(help="Statistic to compute")],
    user: Annotated[
        str, typer.Option("--user", "-u", help="Reviewee ID (reviews only)")
    ] = "",
    start: Annotated[str, typer.Option("--start", help="ISO-8601 start of the date range")] = "",
    end: Annotated[str, typer.Option("--end", help="ISO-8601 end of the date range")] = "",
    database: Annotated[
        str, typer.Option("--database", "-d", help="DuckDB database path")
    ] = "",
    config: Annotated[
        str, typer.Option("--config", "-c", help="Path to configuration file")
    ] = "",
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable verbose output")
    ] = False,
) -> None:
    """Print dispute, payment or review statistics as JSON.

    Examples:
        sekoropo stats disputes --database sekoropo.duckdb

        sekoropo stats reviews --user u1 --database sekoropo.duckdb

        sekoropo stats payments --start 2024-01-01T00:00:00Z --end 2024-12-31T23:59:59Z
    """
    settings = _load_config(config, database)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if bool(start) != bool(end):
        typer.echo("❌ --start and --end must be given together", err=True)
        raise typer.Exit(code=1)
    date_range = {"start": start, "end": end} if start else None

    try:
        result = asyncio.run(_run_stats(settings, kind, user or None, date_range))
    except SekoropoError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1) from e
    _echo_result(result)


@app.command()
def seed(
    path: Annotated[Path, typer.Argument(help="JSON file of {collection: [documents]}")],
    database: Annotated[
        str, typer.Option("--database", "-d", help="DuckDB database path")
    ] = "",
    config: Annotated[
        str, typer.Option("--config", "-c", help="Path to configuration file")
    ] = "",
) -> None:
    """Load documents from a JSON export into the configured store."""
    if not path.exists():
        typer.echo(f"❌ Seed file not found: {path}", err=True)
        raise typer.Exit(code=1)

    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        typer.echo(f"❌ Invalid JSON in {path}: {e}", err=True)
        raise typer.Exit(code=1) from e

    if not isinstance(payload, dict) or not all(isinstance(v, list) for v in payload.values()):
        typer.echo("❌ Seed file must map collection names to lists of documents", err=True)
        raise typer.Exit(code=1)

    settings = _load_config(config, database)
    try:
        counts = asyncio.run(_seed(settings, payload))
    except SekoropoError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1) from e

    for collection, count in counts.items():
        typer.echo(f"✓ {collection}: {count}")


@app.command()
def version() -> None:
    """Show Sekoropo version information."""
    try:
        ver = importlib.metadata.version("sekoropo")
    except importlib.metadata.PackageNotFoundError:
        ver = __version__
    typer.echo(f"Sekoropo version: {ver}")


@app.command()
def info(
    config: Annotated[
        str, typer.Option("--config", "-c", help="Path to configuration file")
    ] = "",
) -> None:
    """Show Sekoropo configuration summary."""
    settings = get_config(config or None)
    typer.echo("Sekoropo - query aggregation layer for a piece-job marketplace")
    typer.echo("")
    typer.echo(f"Environment: {settings.environment}")
    typer.echo(f"Store: {settings.store.backend} ({settings.store.path})")
    typer.echo(f"Currency: {settings.platform_currency}")
    typer.echo(f"Default page size: {settings.query.default_limit}")
    typer.echo(f"Metrics: {'enabled' if settings.metrics_enabled else 'disabled'}")
    typer.echo(f"Telemetry: {'enabled' if settings.telemetry_enabled else 'disabled'}")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
