from __future__ import annotations
import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from opentelemetry import trace

from harvestbridge.config.models import BridgeConfig
from harvestbridge.connectors.transport import AiohttpTransport, HttpTransport
from harvestbridge.errors import (
    AuthenticationError,
    MalformedResponseError,
    RemoteError,
    ResourceNotFoundError,
)
from harvestbridge.projection.projector import ResponseProjector
from harvestbridge.query.codec import parse_query
from harvestbridge.query.template import resolve
from harvestbridge.routing.assembler import RequestAssembler
from harvestbridge.routing.models import Operation, QueryRequest, RecordList
from harvestbridge.routing.router import EndpointRouter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("harvestbridge.connector")


class HarvestConnector:
    """
    count / retrieve / search over the Harvest v2 API.

    Pipeline per call (all steps pure except the GET):
      resolve template → parse query → route → assemble URL →
      transport.get → status check → JSON decode → project

    Holds only its config and transport, so one instance can serve
    concurrent calls on the same event loop.
    """

    NAME = "Harvest Application Bridge"
    VERSION = "1.0.0"

    def __init__(
        self,
        config: BridgeConfig,
        transport: Optional[HttpTransport] = None,
        router: Optional[EndpointRouter] = None,
    ) -> None:
        self.config = config
        self._transport = transport or AiohttpTransport(timeout_s=config.timeout_s)
        self._own_transport = transport is None
        self._router = router or EndpointRouter()
        self._assembler = RequestAssembler(config.base_url, config.max_page_size)
        self._projector = ResponseProjector()
        self._logger = logging.getLogger(f"harvestbridge.connector.{config.bridge_id}")

    async def close(self) -> None:
        if self._own_transport:
            await self._transport.close()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def count(
        self,
        structure: str,
        query: str,
        parameters: Optional[Mapping[str, Optional[str]]] = None,
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ) -> int:
        payload = await self._fetch(Operation.COUNT, structure, query, parameters, metadata)
        return self._projector.count(payload)

    async def retrieve(
        self,
        structure: str,
        query: str,
        parameters: Optional[Mapping[str, Optional[str]]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> Dict[str, str]:
        payload = await self._fetch(Operation.RETRIEVE, structure, query, parameters, None)
        return self._projector.retrieve(payload, fields)

    async def search(
        self,
        structure: str,
        query: str,
        parameters: Optional[Mapping[str, Optional[str]]] = None,
        fields: Optional[Sequence[str]] = None,
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ) -> RecordList:
        payload = await self._fetch(Operation.SEARCH, structure, query, parameters, metadata)
        return self._projector.search(payload, structure, fields)

    async def execute(self, operation: Operation | str, request: QueryRequest) -> Any:
        """Run one QueryRequest through the matching public operation."""
        operation = Operation(operation)
        if operation is Operation.COUNT:
            return await self.count(
                request.structure, request.query, request.parameters, request.metadata
            )
        if operation is Operation.RETRIEVE:
            return await self.retrieve(
                request.structure, request.query, request.parameters, request.fields
            )
        return await self.search(
            request.structure, request.query, request.parameters,
            request.fields, request.metadata,
        )

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    def build_url(
        self,
        operation: Operation | str,
        structure: str,
        query: str,
        parameters: Optional[Mapping[str, Optional[str]]] = None,
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ) -> str:
        """Everything up to the network call: the URL this request would GET."""
        operation = Operation(operation)
        self._assembler.validate_metadata(metadata, operation)
        literal = resolve(query, parameters or {})
        parsed = parse_query(literal)
        path, residual = self._router.route(structure, operation, parsed.params, parsed.path)
        return self._assembler.assemble(path, residual, metadata, operation)

    async def _fetch(
        self,
        operation: Operation,
        structure: str,
        query: str,
        parameters: Optional[Mapping[str, Optional[str]]],
        metadata: Optional[Mapping[str, Optional[str]]],
    ) -> Any:
        with tracer.start_as_current_span(
            f"connector.harvest.{operation.value}",
            attributes={
                "bridge.id": self.config.bridge_id,
                "bridge.structure": structure,
                "bridge.operation": operation.value,
            },
        ) as span:
            self._logger.debug(
                "%s %s query=%r", operation.value, structure, query,
            )
            url = self.build_url(operation, structure, query, parameters, metadata)
            self._logger.debug("GET %s", url)

            status, body = await self._transport.get(url, self.config.request_headers())
            span.set_attribute("http.status_code", status)
            self._logger.debug("Request response code: %d", status)

            if status == 404:
                raise ResourceNotFoundError(url)
            if status == 401:
                raise AuthenticationError(url)
            if not 200 <= status < 300:
                raise RemoteError(status, body)

            try:
                return json.loads(body)
            except ValueError as exc:
                raise MalformedResponseError(
                    f"Harvest returned invalid JSON for {structure}: {exc}"
                ) from exc

