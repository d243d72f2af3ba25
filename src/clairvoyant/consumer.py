"""MetricConsumer — the connection to a metric server."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING, Any

from clairvoyant.access import NoAccessProvider, RequestAccessProvider, TokenAccessProvider
from clairvoyant.codec import Codec, JSONCodec
from clairvoyant.errors import MetricError, NoValueAvailable, TransportError, TypeMismatch
from clairvoyant.metric import ConsumableMetric, GenericConsumableMetric
from clairvoyant.models import (
    DISTANT_FUTURE,
    DISTANT_PAST,
    ExtendedMetricInfo,
    LastValueTable,
    MetricHistoryRequest,
    MetricInfo,
    Timestamped,
    hash_metric_id,
)
from clairvoyant.registry import CustomTypeRegistry, describe_as
from clairvoyant.routes import ServerRoute
from clairvoyant.transport import HTTPTransport, MetricRequest, Transport, join_url
from clairvoyant.values import builtin_value_type, describe_value

if TYPE_CHECKING:
    from clairvoyant.config import ConsumerConfig
    from clairvoyant.models import MetricType

logger = logging.getLogger(__name__)


class MetricConsumer:
    """The main connection to a metric server.

    Holds the server url, access provider and transport. Configuration
    changes are serialized; each request uses the configuration captured
    when it started. Custom value types are resolved through the registry.
    """

    def __init__(
        self,
        url: str,
        access_provider: RequestAccessProvider | None = None,
        transport: Transport | None = None,
        codec: Codec | None = None,
        registry: CustomTypeRegistry | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            url: The url of the server where the metrics are exposed.
            access_provider: Adds credentials to requests. Defaults to no credentials.
            transport: Sends the requests. Defaults to an HTTPTransport owned by the consumer.
            codec: Encodes requests and decodes responses. Defaults to JSONCodec.
            registry: Handles custom value types. Defaults to an empty registry.
        """
        self._server_url = url
        self._access_provider: RequestAccessProvider = access_provider or NoAccessProvider()
        self._owns_transport = transport is None
        self._transport: Transport = HTTPTransport() if transport is None else transport
        self.codec: Codec = codec or JSONCodec()
        # an empty registry is falsy, so don't use `or` here
        self.registry = CustomTypeRegistry() if registry is None else registry
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: ConsumerConfig, registry: CustomTypeRegistry | None = None
    ) -> MetricConsumer:
        """Create a consumer sending HTTP requests as described by a config."""
        provider: RequestAccessProvider = (
            TokenAccessProvider(config.token) if config.token else NoAccessProvider()
        )
        consumer = cls(
            config.url,
            access_provider=provider,
            transport=HTTPTransport(timeout=config.timeout),
            registry=registry,
        )
        consumer._owns_transport = True
        return consumer

    # --- Configuration ---

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def access_provider(self) -> RequestAccessProvider:
        return self._access_provider

    @property
    def transport(self) -> Transport:
        return self._transport

    async def set_server_url(self, url: str) -> None:
        """Set the url of the server. Requests in progress keep the previous url."""
        async with self._lock:
            logger.info("Server url changed to %s", url)
            self._server_url = url

    async def set_access_provider(self, access_provider: RequestAccessProvider) -> None:
        """Set the provider adding credentials to requests."""
        async with self._lock:
            logger.info("Access provider changed to %s", type(access_provider).__name__)
            self._access_provider = access_provider

    async def set_transport(self, transport: Transport) -> None:
        """Set the transport for requests.

        Requests in progress finish with the previous transport, which is not closed.
        """
        async with self._lock:
            logger.info("Transport changed to %s", type(transport).__name__)
            self._transport = transport
            self._owns_transport = False

    def register(self, value_type: type, name: str | None = None) -> MetricType:
        """Register a custom value type, so that its metrics can be accessed generically."""
        return self.registry.register(value_type, name)

    async def aclose(self) -> None:
        """Close the transport, if it was created by the consumer."""
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> MetricConsumer:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # --- Metric infos ---

    async def list(self) -> list[MetricInfo]:
        """Get all metrics on the server which the caller may access.

        Raises:
            MetricError: If the request fails or the response can't be decoded.
        """
        return await self._post_decode(ServerRoute.get_metric_list(), list[MetricInfo])

    async def extended_list(self) -> dict[str, ExtendedMetricInfo]:
        """Get all metric infos with their encoded last values, keyed by metric id hash."""
        return await self._post_decode(
            ServerRoute.extended_info_list(), dict[str, ExtendedMetricInfo]
        )

    async def info(self, metric_id: str) -> MetricInfo:
        """Get the info of a metric."""
        route = ServerRoute.get_metric_info(hash_metric_id(metric_id))
        return await self._post_decode(route, MetricInfo)

    # --- Handles ---

    def metric[T](
        self,
        metric_id: str,
        value_type: type[T],
        name: str | None = None,
        description: str | None = None,
    ) -> ConsumableMetric[T]:
        """Get a typed handle for a metric.

        Raises:
            TypeMismatch: If the value type is neither built in nor registered.
        """
        data_type = self.registry.metric_type_of(value_type)
        if data_type is None:
            raise TypeMismatch(f"{value_type.__name__} is not a known metric value type")
        info = MetricInfo(id=metric_id, data_type=data_type, name=name, description=description)
        return ConsumableMetric(self, info, value_type)

    def metric_from[T](self, info: MetricInfo, value_type: type[T]) -> ConsumableMetric[T]:
        """Get a typed handle for a metric info.

        Raises:
            TypeMismatch: If the value type doesn't match the type of the metric.
        """
        if self.registry.value_type_of(info.data_type) is not value_type:
            raise TypeMismatch(
                f"Metric '{info.id}' of type '{info.data_type}' "
                f"can't be accessed as {value_type.__name__}"
            )
        return ConsumableMetric(self, info, value_type)

    def generic_metric(self, info: MetricInfo) -> GenericConsumableMetric:
        """Get a handle for a metric without knowing its value type.

        Metrics of unregistered custom types get a handle which can only
        describe the timestamp of the last value.
        """
        value_type = builtin_value_type(info.data_type)
        if value_type is not None:
            return ConsumableMetric(self, info, value_type)
        return self.registry.metric(info.data_type.raw_value, info, self)

    # --- Last values ---

    async def last_value_data(self, metric_id: str) -> bytes | None:
        """Get the encoded timestamped last value of a metric.

        Returns:
            The encoded value, or None if the metric has no value.

        Raises:
            MetricError: For all failures other than a missing value.
        """
        try:
            return await self._post(ServerRoute.last_value(hash_metric_id(metric_id)))
        except NoValueAvailable:
            return None

    async def last_value[T](self, metric_id: str, value_type: type[T]) -> Timestamped[T] | None:
        """Get the timestamped last value of a metric, or None if it has no value.

        Raises:
            DecodeError: If the value is not of the given type.
        """
        data = await self.last_value_data(metric_id)
        if data is None:
            return None
        return self.codec.decode(data, Timestamped[value_type])  # type: ignore[valid-type]

    async def last_value_description(
        self, metric_id: str, metric_type: MetricType
    ) -> Timestamped[str] | None:
        """Get a textual description of the last value of a metric, or None."""
        data = await self.last_value_data(metric_id)
        if data is None:
            return None
        return self.describe(data, metric_type)

    async def last_value_description_for(self, info: MetricInfo) -> Timestamped[str] | None:
        return await self.last_value_description(info.id, info.data_type)

    async def last_value_data_for_all_metrics(self) -> dict[str, bytes]:
        """Get the encoded last values of all metrics, keyed by metric id hash.

        Metrics without a value are missing from the result.
        """
        table = await self._post_decode(ServerRoute.all_last_values(), LastValueTable)
        return table.root

    async def last_value_description_for_all_metrics(self) -> dict[str, Timestamped[str]]:
        """Describe the last values of all metrics.

        Keyed by metric id hash like `extended_list`, not by metric id. Metrics
        without a value are missing from the result.
        """
        infos = await self.extended_list()
        return {
            id_hash: self.describe(extended.last_value_data, extended.info.data_type)
            for id_hash, extended in infos.items()
            if extended.last_value_data is not None
        }

    def describe(self, data: bytes, metric_type: MetricType) -> Timestamped[str]:
        """Describe an encoded timestamped value. Never raises."""
        return self.registry.describe(data, metric_type, self.codec)

    def describe_as(self, data: bytes, value_type: type) -> Timestamped[str]:
        """Describe an encoded timestamped value of a known type. Never raises."""
        return describe_as(data, value_type, self.codec)

    # --- History ---

    async def history_data(self, metric_id: str, request: MetricHistoryRequest) -> bytes:
        """Get the encoded history of a metric."""
        body = self.codec.encode(request)
        return await self._post(ServerRoute.metric_history(hash_metric_id(metric_id)), body)

    async def history_for_request[T](
        self, metric_id: str, request: MetricHistoryRequest, value_type: type[T]
    ) -> list[Timestamped[T]]:
        data = await self.history_data(metric_id, request)
        return self.codec.decode(data, list[Timestamped[value_type]])  # type: ignore[valid-type]

    async def history[T](
        self,
        metric_id: str,
        value_type: type[T],
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[T]]:
        """Get the history of a metric between two dates.

        `start` may be after `end`. The result is always ordered from `start`
        to `end`, and `limit` counts from `start`.

        Raises:
            MetricError: If the request fails or the values are not of the given type.
        """
        request = MetricHistoryRequest(start=start, end=end, limit=limit)
        return await self.history_for_request(metric_id, request, value_type)

    async def history_in[T](
        self,
        metric_id: str,
        value_type: type[T],
        date_range: tuple[datetime, datetime],
        limit: int | None = None,
    ) -> list[Timestamped[T]]:
        """Get the history of a metric in a closed date range, oldest first.

        To get the newest entries of a range, use `history` with `start` after `end`.
        """
        request = MetricHistoryRequest.from_range(date_range, limit)
        return await self.history_for_request(metric_id, request, value_type)

    async def text_history(
        self, metric_id: str, request: MetricHistoryRequest, value_type: type
    ) -> list[Timestamped[str]]:
        values = await self.history_for_request(metric_id, request, value_type)
        return [v.map_value(describe_value) for v in values]

    async def history_description(
        self,
        metric_id: str,
        metric_type: MetricType,
        start: datetime = DISTANT_PAST,
        end: datetime = DISTANT_FUTURE,
        limit: int | None = None,
    ) -> list[Timestamped[str]]:
        """Get the history of a metric as text, resolving the value type from its tag.

        Raises:
            DecodeError: If the metric has an unregistered custom type.
        """
        request = MetricHistoryRequest(start=start, end=end, limit=limit)
        return await self._history_description(metric_id, metric_type, request)

    async def history_description_in(
        self,
        metric_id: str,
        metric_type: MetricType,
        date_range: tuple[datetime, datetime],
        limit: int | None = None,
    ) -> list[Timestamped[str]]:
        request = MetricHistoryRequest.from_range(date_range, limit)
        return await self._history_description(metric_id, metric_type, request)

    async def _history_description(
        self, metric_id: str, metric_type: MetricType, request: MetricHistoryRequest
    ) -> list[Timestamped[str]]:
        value_type = builtin_value_type(metric_type)
        if value_type is not None:
            return await self.text_history(metric_id, request, value_type)
        return await self.registry.history(metric_id, request, metric_type.raw_value, self)

    # --- Requests ---

    async def _post(self, route: ServerRoute, body: bytes | None = None) -> bytes:
        """Send a request with the current configuration and return the response body.

        Raises:
            MetricError: If the request fails.
        """
        async with self._lock:
            server_url = self._server_url
            access_provider = self._access_provider
            transport = self._transport

        request = MetricRequest(url=join_url(server_url, route.path), route=route, body=body)
        access_provider.add_access_data(request, route)
        try:
            return await transport.post(request)
        except MetricError:
            raise
        except Exception as e:
            raise TransportError(f"Request to {route} failed: {e}") from e

    async def _post_decode(self, route: ServerRoute, shape: Any) -> Any:
        data = await self._post(route)
        return self.codec.decode(data, shape)

    def __repr__(self) -> str:
        return f"MetricConsumer(url={self._server_url!r}, registry={self.registry!r})"
