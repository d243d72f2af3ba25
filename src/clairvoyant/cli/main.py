"""Clairvoyant CLI application."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Annotated

import typer
from rich import print as rprint
from rich.logging import RichHandler

import clairvoyant as clairvoyant_pkg
from clairvoyant.config import ConsumerConfig
from clairvoyant.consumer import MetricConsumer


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    human = "human"
    json = "json"


app = typer.Typer(
    name="clairvoyant",
    help="Inspect metrics exposed by a Clairvoyant metric server.",
    no_args_is_help=True,
)

UrlOption = Annotated[
    str | None,
    typer.Option("--url", "-u", help="Server url (default: CLAIRVOYANT_URL)"),
]
TokenOption = Annotated[
    str | None,
    typer.Option("--token", "-t", help="Access token (default: CLAIRVOYANT_TOKEN)"),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Output format"),
]


def version_callback(value: bool) -> None:
    if value:
        rprint(f"clairvoyant {clairvoyant_pkg.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log requests"),
    ] = False,
) -> None:
    """Clairvoyant — access metrics of a remote server."""
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


def _load_config(url: str | None, token: str | None) -> ConsumerConfig:
    if url:
        return ConsumerConfig(url=url, token=token)
    try:
        config = ConsumerConfig.from_env()
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    if token:
        config = config.model_copy(update={"token": token})
    return config


def _run(
    url: str | None,
    token: str | None,
    command: Callable[[MetricConsumer], Awaitable[int]],
) -> None:
    config = _load_config(url, token)

    async def run() -> int:
        async with MetricConsumer.from_config(config) as consumer:
            return await command(consumer)

    raise typer.Exit(asyncio.run(run()))


@app.command("list")
def list_metrics(
    url: UrlOption = None,
    token: TokenOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """List all metrics on the server."""
    from clairvoyant.cli.metrics_cli import list_command

    _run(url, token, lambda consumer: list_command(consumer, format.value))


@app.command("info")
def info(
    metric_id: Annotated[str, typer.Argument(help="The id of the metric")],
    url: UrlOption = None,
    token: TokenOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Show the info of a metric."""
    from clairvoyant.cli.metrics_cli import info_command

    _run(url, token, lambda consumer: info_command(consumer, metric_id, format.value))


@app.command("last")
def last(
    metric_id: Annotated[str, typer.Argument(help="The id of the metric")],
    url: UrlOption = None,
    token: TokenOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Show the last value of a metric."""
    from clairvoyant.cli.metrics_cli import last_command

    _run(url, token, lambda consumer: last_command(consumer, metric_id, format.value))


@app.command("history")
def history(
    metric_id: Annotated[str, typer.Argument(help="The id of the metric")],
    start: Annotated[
        str | None,
        typer.Option("--start", "-s", help="Start date (ISO-8601 or 'now')"),
    ] = None,
    end: Annotated[
        str | None,
        typer.Option("--end", "-e", help="End date (ISO-8601 or 'now'), may be before start"),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=0, help="Maximum number of values, counted from start"),
    ] = None,
    url: UrlOption = None,
    token: TokenOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Show the history of a metric."""
    from clairvoyant.cli.metrics_cli import history_command

    _run(
        url,
        token,
        lambda consumer: history_command(
            consumer, metric_id, start, end, limit, output_format=format.value
        ),
    )
