from __future__ import annotations
import logging
from typing import Any, List

from restsql.connectors.base import PageContext, PageResult, PageSource

logger = logging.getLogger(__name__)


class StaticPageSource(PageSource):
    """
    Serves pre-decoded pages from memory, in order (dev/demo "mock" mode).

    Requests past the last page get an empty collection. Every context it
    was asked for is kept in `requests` for inspection.
    """

    def __init__(self, pages: List[Any], empty_page: Any = None) -> None:
        self._pages = list(pages)
        self._empty = [] if empty_page is None else empty_page
        self.requests: List[PageContext] = []

    async def fetch_page(self, context: PageContext) -> PageResult:
        index = len(self.requests)
        self.requests.append(context)
        document = self._pages[index] if index < len(self._pages) else self._empty
        logger.debug("Mock page %d for %s (offset=%d)", index, context.table_name, context.offset)
        return PageResult(address="mock", document=document)
