"""Tests for QueryPlanner (SQL → scans with projections and condition trees)."""
import itertools

import pytest

from restsql.planner.query_planner import QueryPlanner
from restsql.query.filters import Comparison
from restsql.schema.builder import MappingBuilder
from restsql.schema.models import Column, Direction, Table
from restsql.schema.types import ScalarType

from conftest import hr_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _staff() -> Table:
    cfg = hr_service()
    return MappingBuilder().discover_columns(cfg.tables[0], cfg.components)


def _sites() -> Table:
    return Table(
        name="sites",
        columns=[
            Column("department_id", ScalarType.INT, ("$", "department_id")),
            Column("city", ScalarType.STRING, ("$", "city"), Direction.BOTH),
        ],
        deepest_array_path=("$",),
    )


def _planner() -> QueryPlanner:
    return QueryPlanner({"hr.staff": _staff(), "hr.sites": _sites()})


def _scan(plan, table_name):
    return next(s for s in plan.scans if s.table_name == table_name)


# ---------------------------------------------------------------------------
# Tables and projections
# ---------------------------------------------------------------------------

class TestTables:
    def test_single_table(self):
        plan = _planner().plan("SELECT * FROM hr.staff")
        assert len(plan.scans) == 1
        assert plan.scans[0].view_name == "hr_staff"
        assert "hr_staff" in plan.rewritten_sql

    def test_unknown_table(self):
        with pytest.raises(ValueError, match="Unknown table"):
            _planner().plan("SELECT * FROM hr.nope")

    def test_parse_error(self):
        with pytest.raises(ValueError, match="parse error"):
            _planner().plan("SELECT * FROM hr.staff WHERE (department_id = 1")

    def test_join_two_tables(self):
        plan = _planner().plan(
            "SELECT s.employee_name, x.city FROM hr.staff s "
            "JOIN hr.sites x ON s.department_id = x.department_id"
        )
        assert {s.table_name for s in plan.scans} == {"hr.staff", "hr.sites"}
        assert "hr_staff s" in plan.rewritten_sql

    def test_star_projects_everything(self):
        plan = _planner().plan("SELECT * FROM hr.staff")
        assert plan.scans[0].projected_columns == _staff().column_names()

    def test_projection_in_catalog_order(self):
        plan = _planner().plan("SELECT employee_name, company FROM hr.staff WHERE hired_on IS NOT NULL")
        assert plan.scans[0].projected_columns == ["company", "employee_name", "hired_on"]

    def test_projection_respects_qualifier(self):
        plan = _planner().plan(
            "SELECT x.department_id, s.employee_id FROM hr.staff s "
            "JOIN hr.sites x ON x.city = s.company"
        )
        assert _scan(plan, "hr.staff").projected_columns == ["company", "employee_id"]
        assert _scan(plan, "hr.sites").projected_columns == ["department_id", "city"]


# ---------------------------------------------------------------------------
# WHERE decomposition
# ---------------------------------------------------------------------------

class TestConditions:
    def test_simple_equality(self):
        plan = _planner().plan("SELECT * FROM hr.staff WHERE department_id = 1")
        cond = plan.scans[0].conditions
        assert cond.dnf == [[Comparison("department_id", "=", 1)]]
        assert cond.cnf == [[Comparison("department_id", "=", 1)]]

    def test_literal_on_left_flips_operator(self):
        plan = _planner().plan("SELECT * FROM hr.staff WHERE 5 < employee_id")
        assert plan.scans[0].conditions.dnf == [[Comparison("employee_id", ">", 5)]]

    def test_literal_kinds(self):
        plan = _planner().plan(
            "SELECT * FROM hr.staff WHERE employee_id >= -3 AND employee_name <> 'Ada' AND department_id <= 2.5"
        )
        literals = set(plan.scans[0].conditions.dnf[0])
        assert literals == {
            Comparison("employee_id", ">=", -3),
            Comparison("employee_name", "<>", "Ada"),
            Comparison("department_id", "<=", 2.5),
        }

    def test_non_comparison_literal_keeps_its_column(self):
        plan = _planner().plan("SELECT * FROM hr.staff WHERE employee_name LIKE 'A%'")
        [[literal]] = plan.scans[0].conditions.dnf
        assert literal == Comparison("employee_name", "LIKE", None)

    def test_column_to_column_comparison_names_both_columns(self):
        plan = _planner().plan("SELECT * FROM hr.staff WHERE region = department_name")
        [[first, second]] = plan.scans[0].conditions.dnf
        assert first == Comparison("region", "= department_name", None)
        assert second == Comparison("department_name", "= region", None)

    def test_dnf_and_cnf_are_equivalent(self):
        plan = _planner().plan(
            "SELECT * FROM hr.staff WHERE (department_id = 1 AND employee_id = 2) "
            "OR (department_id = 3 AND employee_id = 4)"
        )
        cond = plan.scans[0].conditions
        assert len(cond.dnf) == 2 and all(len(g) == 2 for g in cond.dnf)
        assert len(cond.cnf) == 4 and all(len(g) == 2 for g in cond.cnf)

        atoms = sorted({lit for g in cond.dnf for lit in g}, key=lambda c: (c.column, c.value))
        for values in itertools.product([False, True], repeat=len(atoms)):
            env = dict(zip(atoms, values))
            dnf = any(all(env[lit] for lit in g) for g in cond.dnf)
            cnf = all(any(env[lit] for lit in g) for g in cond.cnf)
            assert dnf == cnf

    def test_join_pushes_only_owned_predicates(self):
        plan = _planner().plan(
            "SELECT * FROM hr.staff s JOIN hr.sites x ON s.department_id = x.department_id "
            "WHERE x.city = 'Oslo' AND s.employee_id > 3 AND department_id = 1"
        )
        assert _scan(plan, "hr.staff").conditions.dnf == [[Comparison("employee_id", ">", 3)]]
        assert _scan(plan, "hr.sites").conditions.dnf == [[Comparison("city", "=", "Oslo")]]

    def test_self_join_pushes_nothing(self):
        plan = _planner().plan(
            "SELECT * FROM hr.staff a JOIN hr.staff b ON a.department_id = b.department_id "
            "WHERE a.employee_id = 10"
        )
        assert len(plan.scans) == 1
        assert plan.scans[0].conditions.is_empty


# ---------------------------------------------------------------------------
# LIMIT → row budget
# ---------------------------------------------------------------------------

class TestRowBudget:
    def test_plain_limit(self):
        assert _planner().plan("SELECT * FROM hr.staff LIMIT 3").scans[0].row_budget == 3

    def test_limit_with_offset(self):
        plan = _planner().plan("SELECT * FROM hr.staff LIMIT 3 OFFSET 2")
        assert plan.scans[0].row_budget == 5

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM hr.staff WHERE department_id = 1 LIMIT 3",
        "SELECT * FROM hr.staff ORDER BY employee_id LIMIT 3",
        "SELECT COUNT(*) FROM hr.staff LIMIT 3",
        "SELECT DISTINCT company FROM hr.staff LIMIT 3",
        "SELECT * FROM hr.staff",
    ])
    def test_no_budget(self, sql):
        assert _planner().plan(sql).scans[0].row_budget is None
