from __future__ import annotations
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import yaml
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel

from restsql.config.registry import ServiceRegistry
from restsql.engine.catalog import build_catalog
from restsql.engine.query_engine import RestQueryEngine
from restsql.transport.http import HttpTransport

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
QUERY_COUNT = Counter(
    "restsql_queries_total",
    "Total SQL queries processed",
    ["status"],
)
QUERY_LATENCY = Histogram(
    "restsql_query_latency_seconds",
    "Query execution latency",
    buckets=[0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)
SCAN_PAGES = Counter(
    "restsql_scan_pages_total",
    "Pages fetched from REST APIs",
    ["table"],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_registry: Optional[ServiceRegistry] = None
_engine: Optional[RestQueryEngine] = None
_transport: Optional[HttpTransport] = None
_config_dir: str = "configs/services"


def _init_tracing() -> None:
    """
    Initialize OpenTelemetry tracing.

    - OTEL_EXPORTER_OTLP_ENDPOINT set → OTLP HTTP exporter
    - Otherwise → ConsoleSpanExporter when RESTSQL_TRACE_CONSOLE=1, else no exporter
    """
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    resource = Resource.create({
        "service.name": "restsql-gateway",
        "service.version": "1.0.0",
    })
    provider = TracerProvider(resource=resource)

    otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError:
            logger.warning(
                "opentelemetry-exporter-otlp-proto-http not installed; "
                "falling back to console"
            )
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
            logger.info("OpenTelemetry: OTLP exporter → %s", otlp_endpoint)
    elif os.environ.get("RESTSQL_TRACE_CONSOLE") == "1":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("OpenTelemetry: ConsoleSpanExporter")

    trace.set_tracer_provider(provider)


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry, _engine, _transport, _config_dir

    # 0. Tracing (first: other modules read the global provider)
    _init_tracing()

    # 1. Service registry
    _config_dir = os.environ.get("SERVICE_CONFIG_DIR", "configs/services")
    _registry = ServiceRegistry(config_dir=_config_dir)
    try:
        _registry.load_all()
    except FileNotFoundError:
        logger.warning("Service config dir not found: %s; no tables loaded", _config_dir)

    # 2. Catalog (schema errors are fatal at startup)
    catalog = build_catalog(_registry)

    # 3. Transport + engine
    _transport = HttpTransport()
    await _transport.start()
    _engine = RestQueryEngine(catalog, _transport)

    logger.info("RestSQL gateway started. Tables: %s", sorted(catalog))

    yield

    await _transport.close()
    logger.info("RestSQL gateway shut down.")


app = FastAPI(title="RestSQL Gateway", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class QueryRequest(BaseModel):
    sql: str
    metadata: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/v1/query")
async def execute_query(request: QueryRequest):
    """
    Execute a SQL query over the configured REST tables.

    Returns 400 for unknown tables, bad SQL or unsupported request-only
    filters, 502 when the upstream API fails, 504 when it times out.
    """
    if _engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    trace_id = (request.metadata or {}).get("trace_id", str(uuid.uuid4()))

    start_time = time.time()
    result = await _engine.execute_query(request.sql)
    duration = time.time() - start_time

    if "error" in result:
        status_code = result.get("status_code", 500)
        QUERY_COUNT.labels(status=str(status_code)).inc()
        if status_code in (502, 504):
            return JSONResponse(
                status_code=status_code,
                content={
                    "error": "SOURCE_TIMEOUT" if status_code == 504 else "SOURCE_ERROR",
                    "details": result["error"],
                    "trace_id": trace_id,
                },
            )
        raise HTTPException(status_code=status_code, detail=result["error"])

    QUERY_LATENCY.observe(duration)
    QUERY_COUNT.labels(status="200").inc()
    for view_name, stats in result.get("scans", {}).items():
        SCAN_PAGES.labels(table=view_name).inc(stats["pages"])

    result["trace_id"] = trace_id
    return result


@app.get("/v1/tables")
async def list_tables():
    """Column catalog of every configured table."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    tables = []
    for name, entry in sorted(_engine.catalog.items()):
        table = entry.table
        tables.append({
            "name": name,
            "columns": [
                {
                    "name": c.name,
                    "type": c.scalar_type.value,
                    "direction": c.direction.value,
                    "source_path": list(c.source_path),
                }
                for c in table.columns
            ],
            "deepest_array_path": list(table.deepest_array_path),
            "paging": table.paging.model_dump(),
        })
    return {"tables": tables}


@app.post("/v1/reload")
async def reload_services():
    """
    Re-read the service configs and swap in a catalog built from them.

    The new registry and catalog replace the old ones only when both build
    cleanly; on any error the gateway keeps serving the previous tables.
    """
    global _registry, _engine
    if _engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")

    registry = ServiceRegistry(config_dir=_config_dir)
    try:
        registry.load_all()
        catalog = build_catalog(registry)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.error("Reload from %s failed: %s", _config_dir, exc)
        raise HTTPException(status_code=400, detail=f"Reload failed: {exc}") from exc

    _registry = registry
    _engine = RestQueryEngine(catalog, _transport)
    logger.info("Reloaded %d service(s). Tables: %s", registry.count(), sorted(catalog))
    return {"services": registry.count(), "tables": sorted(catalog)}


@app.get("/health")
async def health():
    """Liveness/readiness check."""
    checks: Dict[str, str] = {
        "services": str(_registry.count()) if _registry else "0",
        "tables": str(len(_engine.catalog)) if _engine else "0",
        "engine": "ok" if _engine else "not_initialized",
    }
    all_ok = _engine is not None
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ok" if all_ok else "degraded", "checks": checks},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
