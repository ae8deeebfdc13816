from __future__ import annotations
import asyncio
import datetime as dt
import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import duckdb
import pandas as pd
from opentelemetry import trace

from restsql.engine.catalog import CatalogEntry
from restsql.engine.fetch_loop import FetchLoopController
from restsql.errors import ResponseParseError, TransportError
from restsql.planner.models import QueryPlan, ScanNode
from restsql.planner.query_planner import QueryPlanner
from restsql.query.converter import PredicateConverter
from restsql.transport.http import HttpTransport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("restsql.engine")


class RestQueryEngine:
    """
    Runs SQL over REST tables.

    Flow per request:
      plan → convert predicates → parallel scans (one fetch loop each) →
      register DuckDB views → execute rewritten SQL → return results

    The scans push down what the API can filter; DuckDB re-applies the
    full query, so pushed filters only ever narrow the fetch.
    """

    def __init__(
        self,
        catalog: Dict[str, CatalogEntry],
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self._catalog = catalog
        self._transport = transport

    @property
    def catalog(self) -> Dict[str, CatalogEntry]:
        return self._catalog

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def execute_query(self, sql: str) -> Dict[str, Any]:
        """
        Returns {rows, columns, scans, timing} on success, or
        {error, status_code} for planning, filter, upstream or SQL errors.
        """
        with tracer.start_as_current_span("engine.execute_query", attributes={"sql": sql}) as root_span:
            # 1. Plan
            plan_start = time.time()
            with tracer.start_as_current_span("engine.plan"):
                planner = QueryPlanner({name: e.table for name, e in self._catalog.items()})
                try:
                    plan = planner.plan(sql)
                except ValueError as exc:
                    return {"error": str(exc), "status_code": 400}
            planning_ms = int((time.time() - plan_start) * 1000)

            # 2. Scans
            fetch_start = time.time()
            try:
                scan_results = await self._run_scans(plan)
            except ValueError as exc:
                return {"error": str(exc), "status_code": 400}
            except TransportError as exc:
                return {"error": str(exc), "status_code": 504 if exc.timed_out else 502}
            except ResponseParseError as exc:
                return {"error": str(exc), "status_code": 502}
            except RuntimeError as exc:
                return {"error": str(exc), "status_code": 500}
            fetch_ms = int((time.time() - fetch_start) * 1000)

            # 3. DuckDB
            duckdb_start = time.time()
            con = duckdb.connect(database=":memory:")
            try:
                with tracer.start_as_current_span("engine.duckdb"):
                    self._register_views(con, scan_results)
                    try:
                        result_df = con.execute(plan.rewritten_sql).df()
                    except duckdb.Error as exc:
                        return {"error": f"SQL execution error: {exc}", "status_code": 400}
            finally:
                con.close()
            duckdb_ms = int((time.time() - duckdb_start) * 1000)

            total_ms = planning_ms + fetch_ms + duckdb_ms
            root_span.set_attribute("engine.total_ms", total_ms)
            root_span.set_attribute("engine.rows_returned", len(result_df))

            return {
                "rows": [
                    {k: _jsonable(v) for k, v in record.items()}
                    for record in result_df.to_dict(orient="records")
                ],
                "columns": result_df.columns.tolist(),
                "scans": {
                    view: {"rows": len(rows), "pages": pages}
                    for view, (_, rows, pages) in scan_results.items()
                },
                "timing": {
                    "total_ms": total_ms,
                    "planning_ms": planning_ms,
                    "fetch_ms": fetch_ms,
                    "duckdb_ms": duckdb_ms,
                },
            }

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    async def _run_scans(
        self, plan: QueryPlan
    ) -> Dict[str, Tuple[List[str], List[Dict[str, Any]], int]]:
        logger.info("Executing %d scan(s)", len(plan.scans))
        with tracer.start_as_current_span("engine.scans", attributes={"scans": len(plan.scans)}):
            tasks = [asyncio.ensure_future(self._run_scan(scan)) for scan in plan.scans]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # first failure wins; stop the other scans and reap them
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        return {view: (columns, rows, pages) for view, columns, rows, pages in results}

    async def _run_scan(
        self, scan: ScanNode
    ) -> Tuple[str, List[str], List[Dict[str, Any]], int]:
        entry = self._catalog[scan.table_name]
        groups = PredicateConverter(entry.table).to_filter_groups(scan.conditions)

        source = entry.page_source(self._transport)
        loop = FetchLoopController(entry.table, source)
        rows: List[Dict[str, Any]] = []
        with tracer.start_as_current_span(
            "engine.scan",
            attributes={
                "scan.table": scan.table_name,
                "scan.dnf_groups": len(groups.dnf),
                "scan.cnf_groups": len(groups.cnf),
            },
        ) as span:
            try:
                async for row in loop.fetch_all(groups, scan.projected_columns, scan.row_budget):
                    rows.append(row)
            finally:
                await source.close()
            span.set_attribute("scan.rows", len(rows))
            span.set_attribute("scan.pages", loop.pages_fetched)

        return scan.view_name, scan.projected_columns, rows, loop.pages_fetched

    # ------------------------------------------------------------------
    # DuckDB view registration
    # ------------------------------------------------------------------

    def _register_views(
        self,
        con: duckdb.DuckDBPyConnection,
        scan_results: Dict[str, Tuple[List[str], List[Dict[str, Any]], int]],
    ) -> None:
        """Empty scans still register a view with the projected columns so JOINs resolve."""
        for view_name, (columns, rows, _) in scan_results.items():
            records = [
                {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in row.items()}
                for row in rows
            ]
            df = pd.DataFrame(records, columns=columns)
            con.register(view_name, df)
            logger.debug("Registered view: %s (%d rows)", view_name, len(rows))


def _jsonable(value: Any) -> Any:
    """DuckDB/pandas result cell → JSON-serializable value."""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, dt.datetime, dt.date, dt.time)):
        return None if value is pd.NaT else value.isoformat()
    if not isinstance(value, (list, dict, str)) and pd.isna(value):
        return None
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "item"):
        return value.item()   # numpy scalar
    return value
