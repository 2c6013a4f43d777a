from __future__ import annotations
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import yaml
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import ValidationError

from harvestbridge.config.models import BridgeConfig
from harvestbridge.config.registry import BridgeRegistry, DuplicateBridgeError
from harvestbridge.connectors.harvest import HarvestConnector
from harvestbridge.errors import BridgeError
from harvestbridge.routing.models import Operation, QueryRequest

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
REQUEST_COUNT = Counter(
    "harvestbridge_requests_total",
    "Total bridge requests processed",
    ["operation", "status"],
)
REQUEST_LATENCY = Histogram(
    "harvestbridge_request_latency_seconds",
    "Bridge request latency, Harvest round trip included",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_registry: Optional[BridgeRegistry] = None
_connectors: Dict[str, HarvestConnector] = {}


def _build_connector(cfg: BridgeConfig) -> HarvestConnector:
    return HarvestConnector(cfg)


def _init_tracing() -> None:
    """Print connector spans to stdout."""
    provider = TracerProvider(resource=Resource.create({
        "service.name": "harvest-bridge",
        "service.version": HarvestConnector.VERSION,
    }))
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


async def _sync_connectors() -> List[str]:
    """
    Bring _connectors in line with the registry.

    A bridge whose config is unchanged keeps its connector (and its open
    session). New or changed bridges get a fresh connector; the connectors
    they replace, and those of removed bridges, are closed after the swap.
    """
    global _connectors
    previous = _connectors
    current: Dict[str, HarvestConnector] = {}
    for bridge_id in _registry.all_bridge_ids():
        cfg = _registry.get(bridge_id)
        existing = previous.get(bridge_id)
        if existing is not None and existing.config == cfg:
            current[bridge_id] = existing
        else:
            current[bridge_id] = _build_connector(cfg)
    _connectors = current

    for bridge_id, conn in previous.items():
        if current.get(bridge_id) is not conn:
            await conn.close()
    return sorted(current)


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry, _connectors

    if os.environ.get("BRIDGE_TRACING", "1") != "0":
        _init_tracing()

    config_dir = os.environ.get("BRIDGE_CONFIG_DIR", "configs/bridges")
    _registry = BridgeRegistry(config_dir=config_dir)
    try:
        _registry.load_all()
    except FileNotFoundError:
        logger.warning("Bridge config dir not found: %s; no bridges loaded", config_dir)

    bridges = await _sync_connectors()
    logger.info("Harvest bridge gateway started. Bridges: %s", bridges)

    yield

    for conn in _connectors.values():
        await conn.close()
    _connectors = {}
    logger.info("Harvest bridge gateway shut down.")


app = FastAPI(title="Harvest Bridge Gateway", version=HarvestConnector.VERSION, lifespan=lifespan)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/v1/bridges/{bridge_id}/{operation}")
async def execute(bridge_id: str, operation: Operation, request: QueryRequest):
    """
    Run count / retrieve / search against the named Harvest bridge.

    Returns {"count": n}, {"record": {...}} or {"fields": [...], "records": [...]}.
    Bridge errors are returned as {"error": <ErrorClass>, "details": <message>}
    with the error's status code.
    """
    connector = _connectors.get(bridge_id)
    if connector is None:
        REQUEST_COUNT.labels(operation=operation.value, status="404").inc()
        return JSONResponse(
            status_code=404,
            content={"error": "UnknownBridge", "details": f"No bridge named '{bridge_id}'"},
        )

    start_time = time.time()
    try:
        result = await connector.execute(operation, request)
    except BridgeError as exc:
        REQUEST_COUNT.labels(operation=operation.value, status=str(exc.status_code)).inc()
        logger.warning("%s %s on %s failed: %s", operation.value, request.structure, bridge_id, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "details": str(exc)},
        )
    finally:
        REQUEST_LATENCY.labels(operation=operation.value).observe(time.time() - start_time)

    REQUEST_COUNT.labels(operation=operation.value, status="200").inc()
    return _render(operation, result)


def _render(operation: Operation, result: Any) -> Dict[str, Any]:
    if operation is Operation.COUNT:
        return {"count": result}
    if operation is Operation.RETRIEVE:
        return {"record": result}
    return {"fields": result.fields, "records": result.records}


@app.post("/admin/reload")
async def reload_bridges():
    """
    Re-read the bridge config directory and swap connectors.

    A broken config directory leaves every bridge as it was and answers 400.
    """
    try:
        _registry.reload()
    except (ValidationError, yaml.YAMLError, DuplicateBridgeError, FileNotFoundError) as exc:
        logger.error("Bridge reload rejected: %s", exc)
        return JSONResponse(
            status_code=400,
            content={"error": "InvalidBridgeConfig", "details": str(exc)},
        )
    bridges = await _sync_connectors()
    return {"status": "reloaded", "bridges": bridges}


@app.get("/health")
async def health():
    """Liveness/readiness probe."""
    bridges = _registry.count() if _registry else 0
    return JSONResponse(status_code=200, content={"status": "ok", "bridges": bridges})


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8003)
