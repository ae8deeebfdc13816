from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from restsql.query.filters import FilterGroups


@dataclass(frozen=True)
class PageContext:
    """Everything a page source needs to request one page."""

    table_name: str
    offset: int
    limit: int
    start_page: int = 0
    projects: List[str] = field(default_factory=list)   # selected source field names
    filters: FilterGroups = field(default_factory=FilterGroups)

    @property
    def page(self) -> int:
        if self.limit <= 0:
            return self.start_page
        return self.start_page + self.offset // self.limit


@dataclass(frozen=True)
class PageResult:
    address: Optional[str]   # address that served the page
    document: Any            # decoded response document


class PageSource(ABC):
    """
    Fetches one decoded response document per page.

    A source is created per scan, so any state it keeps (such as the
    address it settled on) lives for one query only.
    """

    @abstractmethod
    async def fetch_page(self, context: PageContext) -> PageResult:
        ...

    async def close(self) -> None:
        pass
