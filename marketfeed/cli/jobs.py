"""Job commands for the marketfeed CLI."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
import uvicorn

from marketfeed.core.config import MarketFeedConfig
from marketfeed.core.exceptions import AllFeedsFailedError, ConfigurationError
from marketfeed.core.models import BatchJobResult, OverallResult, ProcessingOutcome
from marketfeed.core.service import MarketDataService, load_client
from marketfeed.web import create_app as create_web_app

FATAL_EXIT_CODE = 1
CONFIG_EXIT_CODE = 2


def register(app: typer.Typer) -> None:
    """Register the job commands on the provided application."""

    app.command("run-market-data")(run_market_data_command)
    app.command("run-equity-prices")(run_equity_prices_command)
    app.command("serve")(serve_command)


def get_service(config: MarketFeedConfig, client_factory: str | None = None) -> MarketDataService:
    """Factory hook for obtaining a :class:`MarketDataService` instance."""

    factory_path = client_factory or config.upstream.client_factory
    if not factory_path:
        raise ConfigurationError("no upstream client configured; set MARKETFEED_UPSTREAM__CLIENT_FACTORY")
    return MarketDataService(load_client(factory_path), config=config)


def _outcome_payload(outcome: ProcessingOutcome) -> dict[str, Any]:
    return {
        "feed": outcome.feed_type.value,
        "succeeded": outcome.succeeded,
        "record_count": outcome.record_count,
        "failure_kind": outcome.failure_kind.value if outcome.failure_kind else None,
        "failure_reason": str(outcome.failure_reason) if outcome.failure_reason else None,
    }


def _overall_payload(result: OverallResult) -> dict[str, Any]:
    return {
        "status": "partial" if result.partial else "success",
        "feeds": [_outcome_payload(outcome) for outcome in result.outcomes],
    }


def _batch_payload(result: BatchJobResult) -> dict[str, Any]:
    return {
        "identifiers": result.identifier_count,
        "batches": result.batch_count,
        "succeeded_batches": result.succeeded_batches,
        "failed_batches": result.failed_batches,
        "records_persisted": result.records_persisted,
        "published": result.published,
        "errors": [str(error) for error in result.errors],
    }


def _build_service(ctx: typer.Context, client_factory: str | None) -> MarketDataService:
    try:
        return get_service(ctx.obj["config"], client_factory)
    except ConfigurationError as exc:
        typer.echo(json.dumps(exc.to_payload(), default=str), err=True)
        raise typer.Exit(code=CONFIG_EXIT_CODE) from exc


CLIENT_OPTION = typer.Option(None, "--client", help="Upstream client factory as 'module:factory'.")


def run_market_data_command(ctx: typer.Context, client: str | None = CLIENT_OPTION) -> None:
    """Fetch, validate, persist and publish the indices and ETF feeds once."""

    service = _build_service(ctx, client)

    async def _run() -> OverallResult:
        async with service:
            return await service.run_market_data()

    try:
        result = asyncio.run(_run())
    except AllFeedsFailedError as exc:
        typer.echo(json.dumps(exc.to_payload(), default=str), err=True)
        raise typer.Exit(code=FATAL_EXIT_CODE) from exc
    typer.echo(json.dumps(_overall_payload(result)))


def run_equity_prices_command(ctx: typer.Context, client: str | None = CLIENT_OPTION) -> None:
    """Run the equity price batch job once."""

    service = _build_service(ctx, client)

    async def _run() -> BatchJobResult:
        async with service:
            return await service.run_equity_prices()

    result = asyncio.run(_run())
    typer.echo(json.dumps(_batch_payload(result)))


def serve_command(
    ctx: typer.Context,
    client: str | None = CLIENT_OPTION,
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", help="Bind port."),
    scheduler: bool = typer.Option(True, "--scheduler/--no-scheduler", help="Run both jobs periodically."),
) -> None:
    """Serve the read API and metrics, running the jobs on their intervals."""

    service = _build_service(ctx, client)
    uvicorn.run(create_web_app(service, run_scheduler=scheduler), host=host, port=port, log_level="info")
