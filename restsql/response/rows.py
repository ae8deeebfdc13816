from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional

from restsql.schema.models import Column, Direction, Table
from restsql.schema.types import coerce


class RowProjector:
    """
    Turns flat rows into typed column → value rows for the projected
    columns.

    REQUEST columns never appear in responses; they take the value the
    query sent for them. BOTH columns prefer the response and fall back to
    the sent value.
    """

    def __init__(
        self,
        table: Table,
        projected_columns: Optional[List[str]] = None,
        request_values: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if projected_columns:
            self._columns: List[Column] = []
            for name in projected_columns:
                column = table.column(name)
                if column is None:
                    raise ValueError(f"Unknown column '{name}' in table '{table.name}'")
                self._columns.append(column)
        else:
            self._columns = list(table.columns)
        self._request_values = dict(request_values or {})

    @property
    def columns(self) -> List[Column]:
        return list(self._columns)

    def project(self, flat_row: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Raises:
            ValueConversionError: a value does not fit its column type.
        """
        row: Dict[str, Any] = {}
        for column in self._columns:
            if column.direction is Direction.REQUEST:
                raw = self._request_values.get(column.name)
            else:
                raw = flat_row.get(column.row_key)
                if raw is None and column.direction is Direction.BOTH:
                    raw = self._request_values.get(column.name)
            row[column.name] = coerce(raw, column.scalar_type, column.name)
        return row
