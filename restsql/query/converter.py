from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from restsql.errors import FilterValidationError
from restsql.query.filters import (
    OPERATORS,
    Comparison,
    ConditionTree,
    FilterCriterion,
    FilterGroups,
    normalize_operator,
)
from restsql.schema.models import Direction, Table

logger = logging.getLogger(__name__)


class PredicateConverter:
    """
    Translates a decomposed condition tree into API filter groups.

    Each group keeps the literals the API can evaluate; a group left with
    none is dropped rather than sent empty. The host re-applies the full
    WHERE clause to every returned row.
    """

    def __init__(self, table: Table) -> None:
        self._table = table

    def to_filter_groups(self, tree: Optional[ConditionTree]) -> FilterGroups:
        """
        Raises:
            FilterValidationError: a REQUEST-only column is used with
                anything other than '=' against a literal.
        """
        groups = FilterGroups()
        if tree is None:
            return groups
        groups.dnf = self._convert_groups(tree.dnf, groups.request_values)
        groups.cnf = self._convert_groups(tree.cnf, groups.request_values)
        return groups

    def _convert_groups(
        self, source: List[List[Comparison]], request_values: Dict[str, Any]
    ) -> List[List[FilterCriterion]]:
        converted: List[List[FilterCriterion]] = []
        for group in source:
            criteria = self._convert_group(group, request_values)
            if not criteria:
                continue
            if len(criteria) < len(group):
                logger.debug(
                    "Table %s: pushing %d of %d literals in group",
                    self._table.name, len(criteria), len(group),
                )
            converted.append(criteria)
        return converted

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def _convert_group(
        self, literals: List[Comparison], request_values: Dict[str, Any]
    ) -> List[FilterCriterion]:
        converted: List[FilterCriterion] = []
        for literal in literals:
            criterion = self._convert_literal(literal, request_values)
            if criterion is not None:
                converted.append(criterion)
        return converted

    def _convert_literal(
        self, literal: Comparison, request_values: Dict[str, Any]
    ) -> Optional[FilterCriterion]:
        if literal.column is None:
            return None
        column = self._table.column(literal.column)
        if column is None:
            return None

        operator = normalize_operator(literal.operator)

        if column.direction is Direction.REQUEST:
            if operator != "=":
                raise FilterValidationError(column.name, literal.operator)
            if literal.value is not None:
                request_values[column.name] = literal.value
        elif column.direction is Direction.BOTH and operator == "=":
            if literal.value is not None:
                request_values[column.name] = literal.value

        if column.direction is Direction.RESPONSE:
            return None
        if operator not in OPERATORS or literal.value is None:
            return None
        return FilterCriterion(column.source_name, operator, literal.value)
