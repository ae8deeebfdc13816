from __future__ import annotations
import logging
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Type

import sqlglot
import sqlglot.expressions as exp
from sqlglot.optimizer.normalize import normalize

from restsql.planner.models import QueryPlan, ScanNode
from restsql.query.filters import Comparison, ConditionTree
from restsql.schema.models import Table

logger = logging.getLogger(__name__)

_OPERATORS: Dict[Type[exp.Expression], str] = {
    exp.EQ: "=",
    exp.NEQ: "<>",
    exp.GT: ">",
    exp.GTE: ">=",
    exp.LT: "<",
    exp.LTE: "<=",
}

# operator to use when the literal is on the left: 5 < x  →  x > 5
_FLIPPED = {"=": "=", "<>": "<>", ">": "<", "<": ">", ">=": "<=", "<=": ">="}

_UNSUPPORTED = object()


class QueryPlanner:
    """
    Translates a SQL string into one ScanNode per referenced REST table
    using sqlglot AST parsing.

    For each scan the planner extracts the projected columns and the WHERE
    conjuncts that reference only that table, normalized into both DNF and
    CNF. Joins, aggregation and residual filtering are left to DuckDB.
    """

    def __init__(self, catalog: Dict[str, Table]) -> None:
        self._catalog = catalog

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(self, sql: str) -> QueryPlan:
        """
        Parse SQL and produce a QueryPlan.

        Raises:
            ValueError: on a parse error or a table not in the catalog.
        """
        try:
            ast = sqlglot.parse_one(sql, read="duckdb")
        except (sqlglot.errors.ParseError, sqlglot.errors.TokenError) as exc:
            raise ValueError(f"SQL parse error: {exc}") from exc

        table_refs, alias_map, ref_counts, unknown = self._extract_table_refs_with_aliases(ast)
        if unknown:
            raise ValueError(
                f"Unknown table: '{unknown[0]}'. "
                f"Available: {', '.join(sorted(self._catalog))}"
            )
        if not table_refs:
            raise ValueError(
                "No recognized tables in query. "
                f"Available: {', '.join(sorted(self._catalog))}"
            )

        plan = QueryPlan(rewritten_sql=self._rewrite_sql(sql, table_refs))
        select_all = self._selects_star(ast)
        referenced = self._referenced_columns(ast)
        where = ast.args.get("where") if isinstance(ast, exp.Select) else None

        for i, table_name in enumerate(table_refs):
            table = self._catalog[table_name]
            aliases = alias_map[table_name]

            if select_all:
                projected = table.column_names()
            else:
                projected = self._project(table, aliases, referenced)
                if not projected:
                    projected = table.column_names()

            conditions = ConditionTree()
            # a table joined to itself shares one scan; its aliases may filter differently
            if where is not None and ref_counts[table_name] == 1:
                conditions = self._conditions_for(where.this, table_name, table_refs, alias_map)

            plan.add_scan(ScanNode(
                id=f"scan_{i}",
                table_name=table_name,
                view_name=table_name.replace(".", "_"),
                projected_columns=projected,
                conditions=conditions,
                row_budget=self._row_budget(ast, table_refs, ref_counts),
            ))
            logger.debug(
                "Planned scan %s: columns=%s dnf=%d cnf=%d",
                table_name, projected, len(conditions.dnf), len(conditions.cnf),
            )

        return plan

    # ------------------------------------------------------------------
    # AST helpers
    # ------------------------------------------------------------------

    def _extract_table_refs_with_aliases(
        self, ast: exp.Expression
    ) -> Tuple[List[str], Dict[str, Set[str]], Dict[str, int], List[str]]:
        """
        Walk the AST and collect:
        - ordered list of table names that exist in the catalog
        - mapping of table_name → lower-cased names that qualify its columns
        - how often each table is referenced
        - qualified names that are not in the catalog

        For 'FROM hr.departments d', alias_map["hr.departments"] = {"d", "hr_departments"}.
        """
        seen: List[str] = []
        alias_map: Dict[str, Set[str]] = {}
        counts: Dict[str, int] = {}
        unknown: List[str] = []
        cte_names = {cte.alias_or_name for cte in ast.find_all(exp.CTE)}

        for table_node in ast.find_all(exp.Table):
            db = table_node.args.get("db")
            name = table_node.args.get("this")
            if db and name:
                full_name = f"{db.name}.{name.name}"
            elif name:
                full_name = name.name
            else:
                continue

            if full_name not in self._catalog:
                if db and full_name not in unknown:
                    unknown.append(full_name)
                elif not db and full_name not in cte_names and full_name not in unknown:
                    unknown.append(full_name)
                continue

            if full_name not in seen:
                seen.append(full_name)
                alias_map[full_name] = set()
                counts[full_name] = 0
            counts[full_name] += 1

            alias_node = table_node.args.get("alias")
            if alias_node:
                alias_map[full_name].add(alias_node.name.lower())

            alias_map[full_name].add(full_name.replace(".", "_").lower())

        return seen, alias_map, counts, unknown

    @staticmethod
    def _selects_star(ast: exp.Expression) -> bool:
        for select in ast.find_all(exp.Select):
            for projection in select.expressions:
                if isinstance(projection, exp.Star):
                    return True
                if isinstance(projection, exp.Column) and isinstance(projection.this, exp.Star):
                    return True
        return False

    @staticmethod
    def _referenced_columns(ast: exp.Expression) -> List[Tuple[str, Optional[str]]]:
        refs: List[Tuple[str, Optional[str]]] = []
        for col in ast.find_all(exp.Column):
            if isinstance(col.this, exp.Star) or not col.name:
                continue
            refs.append((col.name, col.table.lower() if col.table else None))
        return refs

    @staticmethod
    def _project(
        table: Table, aliases: Set[str], referenced: List[Tuple[str, Optional[str]]]
    ) -> List[str]:
        wanted: Set[str] = set()
        for name, qualifier in referenced:
            if qualifier and qualifier not in aliases:
                continue
            column = table.column(name)
            if column is not None:
                wanted.add(column.name)
        return [c for c in table.column_names() if c in wanted]

    # ------------------------------------------------------------------
    # WHERE decomposition
    # ------------------------------------------------------------------

    def _conditions_for(
        self,
        predicate: exp.Expression,
        table_name: str,
        table_refs: List[str],
        alias_map: Dict[str, Set[str]],
    ) -> ConditionTree:
        conjuncts = [
            c for c in _split(predicate, exp.And)
            if self._belongs_to(c, table_name, table_refs, alias_map)
        ]
        if not conjuncts:
            return ConditionTree()

        combined = exp.and_(*[c.copy() for c in conjuncts])
        dnf_expr = normalize(combined.copy(), dnf=True)
        cnf_expr = normalize(combined.copy(), dnf=False)

        return ConditionTree(
            dnf=[[c for lit in _split(group, exp.And) for c in _to_comparisons(lit)]
                 for group in _split(dnf_expr, exp.Or)],
            cnf=[[c for lit in _split(group, exp.Or) for c in _to_comparisons(lit)]
                 for group in _split(cnf_expr, exp.And)],
        )

    def _belongs_to(
        self,
        expr: exp.Expression,
        table_name: str,
        table_refs: List[str],
        alias_map: Dict[str, Set[str]],
    ) -> bool:
        """True when every column in expr resolves to table_name and nothing else."""
        if expr.find(exp.Subquery, exp.Select):
            return False
        columns = list(expr.find_all(exp.Column))
        if not columns:
            return False
        table = self._catalog[table_name]
        others = [self._catalog[t] for t in table_refs if t != table_name]
        for col in columns:
            if col.table:
                if col.table.lower() not in alias_map[table_name]:
                    return False
            elif table.column(col.name) is None or any(o.column(col.name) for o in others):
                return False
        return True

    # ------------------------------------------------------------------
    # LIMIT
    # ------------------------------------------------------------------

    @staticmethod
    def _row_budget(
        ast: exp.Expression, table_refs: List[str], ref_counts: Dict[str, int]
    ) -> Optional[int]:
        """A LIMIT bounds the fetch only when rows flow straight from one scan."""
        if not isinstance(ast, exp.Select) or len(table_refs) != 1:
            return None
        if ref_counts[table_refs[0]] != 1 or ast.args.get("joins"):
            return None
        for arg in ("where", "group", "order", "having", "distinct", "qualify"):
            if ast.args.get(arg):
                return None
        if ast.find(exp.AggFunc, exp.Window, exp.Subquery, exp.CTE):
            return None

        limit = ast.args.get("limit")
        if limit is None:
            return None
        budget = _int_literal(limit.args.get("expression") or limit.args.get("this"))
        if budget is None:
            return None
        offset = ast.args.get("offset")
        if offset is not None:
            skipped = _int_literal(offset.args.get("expression") or offset.args.get("this"))
            if skipped is None:
                return None
            budget += skipped
        return budget

    def _rewrite_sql(self, sql: str, table_names: List[str]) -> str:
        """
        Replace dotted table names with DuckDB-compatible view names.
        'hr.departments' → 'hr_departments'

        Simple string replace is safe here: table names are validated
        against the catalog before this step.
        """
        result = sql
        # longer names first to prevent partial replacements of substrings
        for table_name in sorted(table_names, key=len, reverse=True):
            result = result.replace(table_name, table_name.replace(".", "_"))
        return result


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

def _split(expr: exp.Expression, kind: Type[exp.Expression]) -> Iterator[exp.Expression]:
    expr = expr.unnest()
    if isinstance(expr, kind):
        yield from _split(expr.left, kind)
        yield from _split(expr.right, kind)
    else:
        yield expr


def _to_comparisons(literal: exp.Expression) -> List[Comparison]:
    """
    A `column <op> literal` comparison becomes one pushable Comparison.
    Anything else (LIKE, IN, column-to-column, functions) becomes one
    value-less Comparison per column it touches, with an operator that
    can never be pushed, so request-only columns are still validated.
    """
    operator = _OPERATORS.get(type(literal))
    if operator is not None:
        left, right = literal.left.unnest(), literal.right.unnest()
        if isinstance(right, exp.Column) and not isinstance(left, exp.Column):
            left, right = right, left
            operator = _FLIPPED[operator]
        if isinstance(left, exp.Column):
            value = _literal_value(right)
            if value is not _UNSUPPORTED:
                return [Comparison(column=left.name, operator=operator, value=value)]
    return _unpushable(literal)


def _unpushable(literal: exp.Expression) -> List[Comparison]:
    operator = _OPERATORS.get(type(literal))
    comparisons: List[Comparison] = []
    seen: Set[str] = set()
    for col in literal.find_all(exp.Column):
        if col.name in seen:
            continue
        seen.add(col.name)
        if operator is None:
            label = literal.key.upper()
        elif any(c.name == col.name for c in literal.left.find_all(exp.Column)):
            label = f"{operator} {literal.right.sql()}"
        else:
            label = f"{_FLIPPED[operator]} {literal.left.sql()}"
        comparisons.append(Comparison(column=col.name, operator=label, value=None))
    if not comparisons:
        comparisons.append(Comparison(column=None, operator=literal.key.upper(), value=None))
    return comparisons


def _literal_value(node: exp.Expression) -> Any:
    if isinstance(node, exp.Null):
        return None
    if isinstance(node, exp.Boolean):
        return node.this
    if isinstance(node, exp.Neg):
        inner = _literal_value(node.this.unnest())
        if isinstance(inner, (int, float)) and not isinstance(inner, bool):
            return -inner
        return _UNSUPPORTED
    if isinstance(node, exp.Literal):
        if node.is_string:
            return node.this
        text = node.this
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return _UNSUPPORTED
    return _UNSUPPORTED


def _int_literal(node: Optional[exp.Expression]) -> Optional[int]:
    if isinstance(node, exp.Literal) and not node.is_string:
        try:
            return int(node.this)
        except ValueError:
            return None
    return None
