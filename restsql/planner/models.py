from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from restsql.query.filters import ConditionTree


@dataclass
class ScanNode:
    """
    One REST table scan requested by a SQL query.

    All scans of a plan are independent and run in parallel.
    """

    id: str                                         # "scan_0"
    table_name: str                                 # "hr.departments"
    view_name: str                                  # "hr_departments" (DuckDB view)
    projected_columns: List[str] = field(default_factory=list)
    conditions: ConditionTree = field(default_factory=ConditionTree)
    # Rows the host needs at most; None when the query needs every row.
    row_budget: Optional[int] = None


@dataclass
class QueryPlan:
    scans: List[ScanNode] = field(default_factory=list)
    rewritten_sql: str = ""   # SQL with dotted table names replaced by view names

    def add_scan(self, scan: ScanNode) -> None:
        self.scans.append(scan)
