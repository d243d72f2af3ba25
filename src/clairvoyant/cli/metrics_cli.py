"""Metric CLI commands — list, info, last, history."""

from __future__ import annotations

from datetime import UTC, datetime

from rich import print as rprint
from rich import print_json
from rich.table import Table

from clairvoyant.consumer import MetricConsumer
from clairvoyant.errors import MetricError
from clairvoyant.models import DISTANT_FUTURE, DISTANT_PAST, MetricInfo, Timestamped


def parse_datetime(text: str | None, default: datetime) -> datetime:
    """Parse an ISO-8601 date, treating naive dates as UTC.

    Raises:
        ValueError: If the text is not a valid date.
    """
    if not text:
        return default
    if text == "now":
        return datetime.now(UTC)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_timestamp(timestamp: datetime) -> str:
    return timestamp.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S")


def _value_to_dict(value: Timestamped[str]) -> dict[str, str]:
    return {"timestamp": value.timestamp.isoformat(), "value": value.value}


def _report_error(error: MetricError, output_format: str) -> int:
    if output_format == "json":
        print_json(data={"error": type(error).__name__, "message": error.message})
    else:
        rprint(f"[red]Error:[/red] {error.message}")
    return 1


def _render_infos(infos: list[MetricInfo]) -> None:
    table = Table(title="Metrics")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Description")
    for info in infos:
        table.add_row(info.id, str(info.data_type), info.name or "", info.description or "")
    rprint(table)


def _render_values(title: str, values: list[Timestamped[str]]) -> None:
    table = Table(title=title)
    table.add_column("Timestamp", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for value in values:
        table.add_row(_format_timestamp(value.timestamp), value.value)
    rprint(table)


async def list_command(consumer: MetricConsumer, output_format: str = "human") -> int:
    """List all metrics on the server.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    try:
        infos = await consumer.list()
    except MetricError as e:
        return _report_error(e, output_format)

    if output_format == "json":
        print_json(data=[info.model_dump(mode="json", by_alias=True) for info in infos])
        return 0

    if not infos:
        rprint("[yellow]No metrics available[/yellow]")
        return 0
    _render_infos(sorted(infos, key=lambda i: i.id))
    return 0


async def info_command(
    consumer: MetricConsumer, metric_id: str, output_format: str = "human"
) -> int:
    """Show the info of a metric.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    try:
        info = await consumer.info(metric_id)
    except MetricError as e:
        return _report_error(e, output_format)

    if output_format == "json":
        print_json(data=info.model_dump(mode="json", by_alias=True))
    else:
        _render_infos([info])
    return 0


async def last_command(
    consumer: MetricConsumer, metric_id: str, output_format: str = "human"
) -> int:
    """Show the last value of a metric, whatever its type.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    try:
        info = await consumer.info(metric_id)
        value = await consumer.generic_metric(info).last_value_description()
    except MetricError as e:
        return _report_error(e, output_format)

    if output_format == "json":
        print_json(data={"id": metric_id, "last": _value_to_dict(value) if value else None})
        return 0

    if value is None:
        rprint(f"[yellow]No value for {metric_id}[/yellow]")
        return 0
    rprint(f"[bold]{metric_id}[/bold] = {value.value} ({_format_timestamp(value.timestamp)})")
    return 0


async def history_command(
    consumer: MetricConsumer,
    metric_id: str,
    start: str | None = None,
    end: str | None = None,
    limit: int | None = None,
    output_format: str = "human",
) -> int:
    """Show the history of a metric, whatever its type.

    `start` may be after `end` to get the newest values first.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    try:
        start_date = parse_datetime(start, DISTANT_PAST)
        end_date = parse_datetime(end, DISTANT_FUTURE)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        return 1

    try:
        info = await consumer.info(metric_id)
        values = await consumer.generic_metric(info).history_description(
            start_date, end_date, limit
        )
    except MetricError as e:
        return _report_error(e, output_format)

    if output_format == "json":
        print_json(data={"id": metric_id, "values": [_value_to_dict(v) for v in values]})
        return 0

    if not values:
        rprint(f"[yellow]No values for {metric_id} in range[/yellow]")
        return 0
    _render_values(f"History of {metric_id}", values)
    return 0
