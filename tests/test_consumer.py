"""Tests for MetricConsumer against an in-process metric server."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fakes import NOW, SERVER_URL, TOKEN, FakeMetricServer, Location, seconds_before_now

from clairvoyant.access import NoAccessProvider, TokenAccessProvider
from clairvoyant.config import ConsumerConfig
from clairvoyant.consumer import MetricConsumer
from clairvoyant.errors import (
    AccessDenied,
    DecodeError,
    EncodeError,
    TransportError,
    TypeMismatch,
)
from clairvoyant.metric import ConsumableMetric, UnknownConsumableMetric
from clairvoyant.models import MetricInfo, MetricType, Timestamped, hash_metric_id
from clairvoyant.registry import UNKNOWN_TYPE, CustomTypeRegistry
from clairvoyant.routes import HEADER_ACCESS_TOKEN, RouteKind
from clairvoyant.transport import HTTPTransport, MetricRequest

# ============================================================================
# Infos
# ============================================================================


@pytest.mark.asyncio
async def test_list(server: FakeMetricServer, consumer: MetricConsumer) -> None:
    temp = server.add_metric("sensor.temp", float, "double", name="Temperature")
    log = server.add_metric("observer.log", str, "string")

    infos = await consumer.list()

    assert sorted(infos, key=lambda i: i.id) == [log, temp]
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_info(server: FakeMetricServer, consumer: MetricConsumer) -> None:
    temp = server.add_metric("sensor.temp", float, "double", description="Outside")

    info = await consumer.info("sensor.temp")

    assert info == temp
    request = server.requests[-1]
    assert request.route.kind == RouteKind.GET_METRIC_INFO
    assert request.url == f"{SERVER_URL}/info/{hash_metric_id('sensor.temp')}"


@pytest.mark.asyncio
async def test_request_carries_token(server: FakeMetricServer, consumer: MetricConsumer) -> None:
    await consumer.list()
    assert server.requests[0].headers[HEADER_ACCESS_TOKEN] == TOKEN


@pytest.mark.asyncio
async def test_access_denied_propagates(server: FakeMetricServer) -> None:
    consumer = MetricConsumer(SERVER_URL, TokenAccessProvider("wrong"), transport=server)
    with pytest.raises(AccessDenied):
        await consumer.list()


@pytest.mark.asyncio
async def test_unknown_metric_is_transport_error(consumer: MetricConsumer) -> None:
    with pytest.raises(TransportError):
        await consumer.info("missing")


@pytest.mark.asyncio
async def test_extended_list(server: FakeMetricServer, consumer: MetricConsumer) -> None:
    server.add_metric("int", int, "int")
    server.add_metric("empty", int, "int")
    server.update("int", Timestamped(value=123, timestamp=NOW))

    extended = await consumer.extended_list()

    assert set(extended) == {hash_metric_id("int"), hash_metric_id("empty")}
    entry = extended[hash_metric_id("int")]
    assert entry.info.id == "int"
    assert extended[hash_metric_id("empty")].last_value_data is None

    handle = consumer.metric("int", int)
    assert handle.decode(entry.last_value_data) == Timestamped(value=123, timestamp=NOW)


# ============================================================================
# Last values
# ============================================================================


@pytest.mark.asyncio
async def test_last_value_data_none_without_value(
    server: FakeMetricServer, consumer: MetricConsumer
) -> None:
    """A metric that was never written has no last value, which is not an error."""
    server.add_metric("int", int, "int")
    assert await consumer.last_value_data("int") is None
    assert await consumer.last_value("int", int) is None
    assert await consumer.last_value_description("int", MetricType.from_raw("int")) is None


@pytest.mark.asyncio
async def test_last_value_data_other_errors_propagate(server: FakeMetricServer) -> None:
    server.add_metric("int", int, "int")
    consumer = MetricConsumer(SERVER_URL, NoAccessProvider(), transport=server)
    with pytest.raises(AccessDenied):
        await consumer.last_value_data("int")


@pytest.mark.asyncio
async def test_last_value(server: FakeMetricServer, consumer: MetricConsumer) -> None:
    server.add_metric("int", int, "int")
    server.update(
        "int",
        Timestamped(value=1, timestamp=NOW - timedelta(seconds=5)),
        Timestamped(value=123, timestamp=NOW),
    )

    assert await consumer.last_value("int", int) == Timestamped(value=123, timestamp=NOW)
    described = await consumer.last_value_description("int", MetricType.from_raw("int"))
    assert described == Timestamped(value="123", timestamp=NOW)


@pytest.mark.asyncio
async def test_last_value_wrong_type_is_decode_error(
    server: FakeMetricServer, consumer: MetricConsumer
) -> None:
    """Decoding failures are distinct from a missing value."""
    server.add_metric("name", str, "string")
    server.update("name", Timestamped(value="text", timestamp=NOW))

    with pytest.raises(DecodeError):
        await consumer.last_value("name", int)


@pytest.mark.asyncio
async def test_last_values_for_all_metrics(
    server: FakeMetricServer, consumer: MetricConsumer
) -> None:
    server.add_metric("int", int, "int")
    server.add_metric("empty", str, "string")
    server.add_metric("gps", Location, "Location")
    server.update("int", Timestamped(value=5, timestamp=NOW))
    server.update("gps", Timestamped(value=Location(latitude=1, longitude=2), timestamp=NOW))

    data = await consumer.last_value_data_for_all_metrics()
    assert set(data) == {hash_metric_id("int"), hash_metric_id("gps")}
    assert consumer.describe_as(data[hash_metric_id("int")], int).value == "5"

    descriptions = await consumer.last_value_description_for_all_metrics()
    assert descriptions[hash_metric_id("int")] == Timestamped(value="5", timestamp=NOW)
    assert descriptions[hash_metric_id("gps")].value == UNKNOWN_TYPE
    assert hash_metric_id("empty") not in descriptions
    assert "int" not in descriptions


# ============================================================================
# History
# ============================================================================


@pytest.fixture
def temperature(server: FakeMetricServer) -> list[Timestamped[float]]:
    server.add_metric("sensor.temp", float, "double")
    values = seconds_before_now(1000)
    server.update("sensor.temp", *values)
    return values


@pytest.mark.asyncio
async def test_full_history(consumer: MetricConsumer, temperature: list) -> None:
    assert await consumer.history("sensor.temp", float) == temperature


@pytest.mark.asyncio
async def test_history_last_hundred_seconds(consumer: MetricConsumer, temperature: list) -> None:
    """The newest 100 points come back oldest first."""
    result = await consumer.history("sensor.temp", float, NOW - timedelta(seconds=99), NOW)
    assert len(result) == 100
    assert result == temperature[-100:]


@pytest.mark.asyncio
async def test_history_reverse_with_limit(consumer: MetricConsumer, temperature: list) -> None:
    """start after end returns the points closest to start, newest first."""
    result = await consumer.history(
        "sensor.temp", float, start=NOW, end=NOW - timedelta(seconds=100), limit=10
    )
    assert result == list(reversed(temperature[-10:]))


@pytest.mark.asyncio
async def test_history_reverse_is_forward_reversed(
    consumer: MetricConsumer, temperature: list
) -> None:
    start, end = temperature[200].timestamp, temperature[299].timestamp
    forward = await consumer.history("sensor.temp", float, start, end)
    reverse = await consumer.history("sensor.temp", float, end, start)
    assert forward == temperature[200:300]
    assert reverse == list(reversed(forward))


@pytest.mark.asyncio
async def test_history_in_range(consumer: MetricConsumer, temperature: list) -> None:
    date_range = (temperature[200].timestamp, temperature[299].timestamp)
    result = await consumer.history_in("sensor.temp", float, date_range, limit=100)
    assert result == temperature[200:300]


@pytest.mark.asyncio
async def test_history_is_single_request(
    server: FakeMetricServer, consumer: MetricConsumer, temperature: list
) -> None:
    await consumer.history("sensor.temp", float, limit=5)
    assert [r.route.kind for r in server.requests] == [RouteKind.METRIC_HISTORY]


@pytest.mark.asyncio
async def test_history_description_builtin(consumer: MetricConsumer, temperature: list) -> None:
    result = await consumer.history_description(
        "sensor.temp", MetricType.from_raw("double"), NOW, NOW - timedelta(hours=1), limit=2
    )
    assert result == [
        Timestamped(value="1000.0", timestamp=NOW),
        Timestamped(value="999.0", timestamp=NOW - timedelta(seconds=1)),
    ]


@pytest.mark.asyncio
async def test_history_description_in_range(consumer: MetricConsumer, temperature: list) -> None:
    result = await consumer.history_description_in(
        "sensor.temp", MetricType.from_raw("double"), (NOW - timedelta(seconds=1), NOW)
    )
    assert [v.value for v in result] == ["999.0", "1000.0"]


@pytest.mark.asyncio
async def test_history_description_custom(
    server: FakeMetricServer, consumer: MetricConsumer
) -> None:
    server.add_metric("gps", Location, "Location")
    server.update("gps", Timestamped(value=Location(latitude=1, longitude=2), timestamp=NOW))
    location = MetricType.custom("Location")

    with pytest.raises(DecodeError):
        await consumer.history_description("gps", location)

    consumer.register(Location)
    result = await consumer.history_description("gps", location)
    assert result == [Timestamped(value="1.00, 2.00", timestamp=NOW)]


# ============================================================================
# Handles
# ============================================================================


def test_metric_handle(consumer: MetricConsumer) -> None:
    handle = consumer.metric("sensor.temp", float, name="Temperature")
    assert handle.info == MetricInfo(
        id="sensor.temp", data_type=MetricType.from_raw("double"), name="Temperature"
    )


def test_metric_handle_unknown_type(consumer: MetricConsumer) -> None:
    with pytest.raises(TypeMismatch):
        consumer.metric("gps", Location)


def test_metric_from_checks_type(consumer: MetricConsumer) -> None:
    info = MetricInfo(id="sensor.temp", data_type=MetricType.from_raw("double"))
    assert consumer.metric_from(info, float).value_type is float
    with pytest.raises(TypeMismatch):
        consumer.metric_from(info, int)


def test_generic_metric_dispatch(consumer: MetricConsumer) -> None:
    double = MetricInfo(id="a", data_type=MetricType.from_raw("double"))
    flag = MetricInfo(id="b", data_type=MetricType.from_raw("bool"))
    gps = MetricInfo(id="c", data_type=MetricType.custom("Location"))

    assert consumer.generic_metric(double).value_type is float
    assert consumer.generic_metric(flag).value_type is bool
    assert isinstance(consumer.generic_metric(gps), UnknownConsumableMetric)

    consumer.register(Location)
    handle = consumer.generic_metric(gps)
    assert isinstance(handle, ConsumableMetric)
    assert handle.value_type is Location


# ============================================================================
# Configuration and transport
# ============================================================================


class GatedTransport:
    """Transport which holds requests until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.requests: list[MetricRequest] = []

    async def post(self, request: MetricRequest) -> bytes:
        self.requests.append(request)
        await self.release.wait()
        return b"[]"

    async def aclose(self) -> None:
        return None


@pytest.mark.asyncio
async def test_config_change_applies_to_later_requests() -> None:
    """In-flight requests keep the url captured when they started."""
    transport = GatedTransport()
    consumer = MetricConsumer("https://old.example.com", transport=transport)

    first = asyncio.create_task(consumer.list())
    while not transport.requests:
        await asyncio.sleep(0)
    await consumer.set_server_url("https://new.example.com")
    second = asyncio.create_task(consumer.list())
    while len(transport.requests) < 2:
        await asyncio.sleep(0)
    transport.release.set()

    assert await first == []
    assert await second == []
    assert transport.requests[0].url == "https://old.example.com/list"
    assert transport.requests[1].url == "https://new.example.com/list"
    assert consumer.server_url == "https://new.example.com"


@pytest.mark.asyncio
async def test_set_access_provider(server: FakeMetricServer) -> None:
    consumer = MetricConsumer(SERVER_URL, transport=server)
    with pytest.raises(AccessDenied):
        await consumer.list()

    await consumer.set_access_provider(TokenAccessProvider(TOKEN))
    assert await consumer.list() == []


@pytest.mark.asyncio
async def test_set_transport(consumer: MetricConsumer) -> None:
    replacement = FakeMetricServer()
    replacement.add_metric("other", int, "int")

    await consumer.set_transport(replacement)

    assert [i.id for i in await consumer.list()] == ["other"]
    assert consumer.transport is replacement


@pytest.mark.asyncio
async def test_config_changes_are_logged(
    consumer: MetricConsumer, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="clairvoyant.consumer")

    await consumer.set_server_url("https://new.example.com")
    await consumer.set_access_provider(TokenAccessProvider("OtherSecret"))
    await consumer.set_transport(FakeMetricServer())

    messages = [r.getMessage() for r in caplog.records]
    assert "Server url changed to https://new.example.com" in messages
    assert "Access provider changed to TokenAccessProvider" in messages
    assert "Transport changed to FakeMetricServer" in messages
    assert all("OtherSecret" not in m for m in messages)


@pytest.mark.asyncio
async def test_foreign_transport_errors_are_wrapped() -> None:
    transport = AsyncMock()
    transport.post.side_effect = ConnectionResetError("reset")
    consumer = MetricConsumer(SERVER_URL, transport=transport)

    with pytest.raises(TransportError, match="reset") as exc_info:
        await consumer.list()
    assert isinstance(exc_info.value.__cause__, ConnectionResetError)


@pytest.mark.asyncio
async def test_metric_errors_from_transport_pass_through() -> None:
    transport = AsyncMock()
    transport.post.side_effect = EncodeError("Server failed", status_code=500)
    consumer = MetricConsumer(SERVER_URL, transport=transport)

    with pytest.raises(EncodeError):
        await consumer.info("a")


@pytest.mark.asyncio
async def test_undecodable_response() -> None:
    transport = AsyncMock()
    transport.post.return_value = b"{not json"
    consumer = MetricConsumer(SERVER_URL, transport=transport)

    with pytest.raises(DecodeError):
        await consumer.list()


@pytest.mark.asyncio
async def test_context_manager_closes_owned_transport() -> None:
    transport = AsyncMock()
    consumer = MetricConsumer(SERVER_URL, transport=transport)
    async with consumer:
        pass
    transport.aclose.assert_not_awaited()

    config = ConsumerConfig(url=SERVER_URL, token=TOKEN)
    owned = MetricConsumer.from_config(config, registry=CustomTypeRegistry())
    assert isinstance(owned.transport, HTTPTransport)
    async with owned:
        pass
    assert owned.transport._client.is_closed
