from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from restsql.config.models import PagingConfig
from restsql.schema.types import ScalarType

# Path segment contributed by a response whose root is an anonymous array.
ROOT_SEGMENT = "$"


class Direction(str, Enum):
    REQUEST = "request"     # only sent to the API, echoed back into rows
    RESPONSE = "response"   # only read from the API's responses
    BOTH = "both"


@dataclass(frozen=True)
class Column:
    """
    One flat, typed column of a REST table.

    source_path is the chain of source field names from the response root
    to the leaf. It may cross array boundaries and may start with
    ROOT_SEGMENT.
    """

    name: str
    scalar_type: ScalarType
    source_path: Tuple[str, ...]
    direction: Direction = Direction.RESPONSE

    @property
    def source_name(self) -> str:
        return self.source_path[-1]

    @property
    def row_key(self) -> str:
        """Key under which the flattener stores this column's value."""
        return ".".join(self.source_path)

    @property
    def is_request(self) -> bool:
        return self.direction in (Direction.REQUEST, Direction.BOTH)

    @property
    def is_response(self) -> bool:
        return self.direction in (Direction.RESPONSE, Direction.BOTH)


@dataclass
class Table:
    """Column catalog plus everything needed to fetch and flatten a table."""

    name: str
    columns: List[Column] = field(default_factory=list)
    # Each segment is the dotted object path leading to the next array.
    deepest_array_path: Tuple[str, ...] = ()
    paging: PagingConfig = field(default_factory=PagingConfig)
    source_names: Dict[str, str] = field(default_factory=dict)            # output → source
    output_names: Dict[str, FrozenSet[str]] = field(default_factory=dict)  # source → outputs

    def column(self, name: str) -> Optional[Column]:
        """Exact match first, then case-insensitive (SQL identifiers fold case)."""
        for col in self.columns:
            if col.name == name:
                return col
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_source_name(self, output_name: str) -> str:
        return self.source_names.get(output_name, output_name)
