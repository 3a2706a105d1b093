"""Main entry point for the marketfeed command line interface."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer

from marketfeed.core.config import MarketFeedConfig, build_config, configure
from marketfeed.core.exceptions import ConfigurationError
from marketfeed.core.logging import configure_logging

from .jobs import CONFIG_EXIT_CODE
from .jobs import register as register_job_commands


def create_app() -> typer.Typer:
    """Create a Typer application instance for marketfeed."""

    app = typer.Typer(add_completion=False, help="marketfeed market data ingestion")

    @app.callback()
    def main(
        ctx: typer.Context,
        config_path: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help="TOML configuration file; environment variables apply otherwise.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            help="Override the configured log level.",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        try:
            config = _load_config(config_path)
        except ConfigurationError as exc:
            typer.echo(json.dumps(exc.to_payload(), default=str), err=True)
            raise typer.Exit(code=CONFIG_EXIT_CODE) from exc

        configure(config)
        level = (log_level or config.logging.level).upper()
        configure_logging(
            level,
            console_stream=sys.stderr,
            file_output=config.logging.file_path is not None,
            file_path=config.logging.file_path,
        )
        ctx.obj["config"] = config

    @app.command("config")
    def show_config(ctx: typer.Context) -> None:
        """Print the effective configuration as JSON."""

        config: MarketFeedConfig = ctx.obj["config"]
        typer.echo(config.model_dump_json(indent=2))

    register_job_commands(app)
    return app


def _load_config(config_path: Path | None) -> MarketFeedConfig:
    if config_path is not None:
        return MarketFeedConfig.load_from_file(config_path)
    return build_config()


app = create_app()
