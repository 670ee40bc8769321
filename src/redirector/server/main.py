"""Redirector - Main entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

import click
import structlog
from pydantic import ValidationError
from rich.console import Console

from redirector.core.config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from redirector.rewrite.config import ConfigurationError
from redirector.rewrite.rules import Configuration
from redirector.rewrite.validation import load_configuration
from redirector.server.gateway import RedirectGateway

console = Console(stderr=True, soft_wrap=True, highlight=False)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure structlog for the chosen level and output format."""
    processors: list[structlog.types.Processor] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


@click.command()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    help="Path to the JSON, YAML or TOML rules file (default: config.json)",
)
@click.option(
    "--metrics-bind",
    help="Bind address for /metrics and /health, e.g. 127.0.0.1:9100",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log level (default: info)",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS, case_sensitive=False),
    help="Log output format (default: console)",
)
@click.option(
    "--check",
    is_flag=True,
    default=False,
    help="Validate the configuration and exit without serving",
)
def main(
    config_file: str | None,
    metrics_bind: str | None,
    log_level: str | None,
    log_format: str | None,
    check: bool,
):
    """Run the Redirector host-based redirect gateway.

    Options not given on the command line are read from REDIRECTOR_*
    environment variables.
    """
    overrides = {
        "config_file": config_file,
        "metrics_bind": metrics_bind,
        "log_level": log_level,
        "log_format": log_format,
    }
    try:
        server_config = ServerConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        console.print(f"Invalid settings: {e}", style="red", markup=False)
        sys.exit(1)

    configure_logging(server_config.log_level, server_config.log_format)

    try:
        configuration, problems = load_configuration(server_config.config_file)
    except ConfigurationError as e:
        console.print(str(e), style="red", markup=False)
        sys.exit(1)

    if problems:
        for problem in problems:
            console.print(problem, style="yellow", markup=False)
        console.print(
            "Configuration contains errors. Please fix the problems and try again.",
            style="red",
        )
        sys.exit(1)

    if check:
        console.print(
            f"Configuration OK: {len(configuration.domains)} domains", style="green"
        )
        return

    asyncio.run(run_server(configuration, server_config))


async def run_server(configuration: Configuration, server_config: ServerConfig) -> None:
    """Run the gateway until cancelled."""
    gateway = RedirectGateway(configuration, metrics_bind=server_config.metrics_bind)

    try:
        await gateway.start()
        await asyncio.Event().wait()
    finally:
        await gateway.stop()


def run() -> None:
    """Console script entry point."""
    with contextlib.suppress(KeyboardInterrupt):
        main()


if __name__ == "__main__":
    run()
