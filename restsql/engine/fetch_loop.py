from __future__ import annotations
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from opentelemetry import trace

from restsql.connectors.base import PageContext, PageSource
from restsql.query.filters import FilterGroups
from restsql.response.flattener import flatten
from restsql.response.rows import RowProjector
from restsql.schema.models import Table

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("restsql.engine")


class FetchLoopController:
    """
    Drives successive page requests for one table scan.

    Pages are strictly sequential: the next offset depends on how many
    rows the previous page produced. A page shorter than page_size ends
    the scan; page_size <= 0 means the API is not paged and one request
    is made. Rows are produced lazily, so a consumer that stops pulling
    stops the fetching.
    """

    def __init__(self, table: Table, page_source: PageSource) -> None:
        self._table = table
        self._source = page_source
        self.pages_fetched = 0

    async def fetch_all(
        self,
        filter_groups: Optional[FilterGroups] = None,
        projected_columns: Optional[List[str]] = None,
        row_budget: Optional[int] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield typed rows for the projected columns.

        Raises (lazily, while iterating):
            TransportError / AllAddressesFailedError, ResponseParseError,
            ValueConversionError, TemplateRenderError, ContextConversionError.
        """
        groups = filter_groups or FilterGroups()
        projector = RowProjector(self._table, projected_columns, groups.request_values)
        projects = _unique([c.source_name for c in projector.columns if c.is_response])

        page_size = self._table.paging.page_size
        offset = 0
        produced = 0

        while True:
            context = PageContext(
                table_name=self._table.name,
                offset=offset,
                limit=page_size,
                start_page=self._table.paging.start_page,
                projects=projects,
                filters=groups,
            )
            with tracer.start_as_current_span(
                "fetch_loop.page",
                attributes={"table": self._table.name, "page.offset": offset},
            ) as span:
                result = await self._source.fetch_page(context)
                self.pages_fetched += 1
                flat_rows = list(flatten(result.document, self._table.deepest_array_path))
                span.set_attribute("page.rows", len(flat_rows))

            logger.debug(
                "Table %s page at offset %d: %d row(s) from %s",
                self._table.name, offset, len(flat_rows), result.address,
            )

            for flat in flat_rows:
                yield projector.project(flat)
                produced += 1

            if page_size <= 0 or len(flat_rows) != page_size:
                break
            if row_budget is not None and produced >= row_budget:
                break
            offset += page_size

        logger.info(
            "Table %s: %d row(s) in %d page(s)", self._table.name, produced, self.pages_fetched,
        )


def _unique(names: List[str]) -> List[str]:
    return list(dict.fromkeys(names))
