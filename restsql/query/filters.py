from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

OPERATORS = ("=", ">", "<", ">=", "<=", "<>")

_ALIASES = {"!=": "<>", "==": "="}


def normalize_operator(op: str) -> str:
    return _ALIASES.get(op, op)


@dataclass(frozen=True)
class Comparison:
    """A literal comparison `column <op> value` from the host's WHERE clause."""

    column: Optional[str]
    operator: str
    value: Any


@dataclass
class ConditionTree:
    """
    One WHERE clause decomposed twice by the host: as an OR of AND-groups
    (dnf) and as an AND of OR-groups (cnf).
    """

    dnf: List[List[Comparison]] = field(default_factory=list)
    cnf: List[List[Comparison]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.dnf and not self.cnf


@dataclass(frozen=True)
class FilterCriterion:
    field_name: str     # source (API-side) field name
    operator: str
    value: Any

    def to_context(self) -> Dict[str, Any]:
        return {"name": self.field_name, "operator": self.operator, "value": self.value}


@dataclass
class FilterGroups:
    dnf: List[List[FilterCriterion]] = field(default_factory=list)
    cnf: List[List[FilterCriterion]] = field(default_factory=list)
    # REQUEST/BOTH column name → value sent to the API and echoed into rows
    request_values: Dict[str, Any] = field(default_factory=dict)
