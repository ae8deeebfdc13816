"""Tests for response parsing and flattening."""
import pytest

from restsql.errors import ResponseParseError
from restsql.response.flattener import flatten
from restsql.response.parsers import parse_body

from conftest import hr_document


# ---------------------------------------------------------------------------
# flatten
# ---------------------------------------------------------------------------

class TestFlatten:
    def test_anonymous_array_gives_one_row_per_element(self):
        doc = [{"id": i, "name": f"n{i}"} for i in range(5)]
        rows = list(flatten(doc, ("$",)))
        assert len(rows) == 5
        assert rows[3] == {"$.id": 3, "$.name": "n3"}

    def test_single_root_object_gives_one_row(self):
        rows = list(flatten({"id": 1, "meta": {"version": "v2"}, "tags": ["x"]}, ()))
        assert rows == [{"id": 1, "meta.version": "v2"}]

    def test_two_level_nesting_cross_product(self):
        rows = list(flatten(hr_document(), ("departments", "employees")))
        assert len(rows) == 4
        assert all(r["company"] == "Acme" for r in rows)
        assert [(r["departments.id"], r["departments.employees.id"]) for r in rows] == [
            (1, 10), (1, 11), (2, 20), (2, 21),
        ]
        # ancestor and leaf fields with the same source name do not collide
        assert rows[0]["departments.name"] == "Eng"
        assert rows[0]["departments.employees.name"] == "Ada"

    def test_root_array_consumed_as_first_segment(self):
        doc = [{"id": 1, "employees": [{"id": 5}, {"id": 6}]}]
        rows = list(flatten(doc, ("departments", "employees")))
        assert rows == [
            {"departments.id": 1, "departments.employees.id": 5},
            {"departments.id": 1, "departments.employees.id": 6},
        ]

    def test_single_object_treated_as_one_element_array(self):
        doc = {"departments": {"id": 7, "employees": {"id": 70}}}
        rows = list(flatten(doc, ("departments", "employees")))
        assert rows == [{"departments.id": 7, "departments.employees.id": 70}]

    def test_dotted_segment(self):
        doc = {"data": {"total": 2, "items": [{"v": 1}, {"v": 2}]}}
        rows = list(flatten(doc, ("data.items",)))
        assert rows == [
            {"data.total": 2, "data.items.v": 1},
            {"data.total": 2, "data.items.v": 2},
        ]

    def test_scalar_elements_keyed_by_segment(self):
        rows = list(flatten({"id": 1, "tags": ["a", "b"]}, ("tags",)))
        assert rows == [{"id": 1, "tags": "a"}, {"id": 1, "tags": "b"}]

    def test_each_level_keyed_by_its_own_path(self):
        doc = {"x": [{"v": 1, "y": [{"v": 2}]}]}
        rows = list(flatten(doc, ("x", "y")))
        assert rows == [{"x.v": 1, "x.y.v": 2}]

    def test_recovery_search_finds_misplaced_array(self):
        doc = {"departments": [
            {"id": 1, "teams": [{"name": "core", "employees": [{"id": 9}]}]},
        ]}
        rows = list(flatten(doc, ("departments", "employees")))
        assert rows == [{"departments.id": 1, "departments.employees.id": 9}]

    def test_missing_branch_yields_nothing(self):
        doc = {"departments": [{"id": 1}, {"id": 2, "employees": [{"id": 3}]}]}
        rows = list(flatten(doc, ("departments", "employees")))
        assert rows == [{"departments.id": 2, "departments.employees.id": 3}]

    def test_missing_collection(self):
        assert list(flatten({"other": 1}, ("departments",))) == []

    def test_scalar_document_rejected(self):
        with pytest.raises(ResponseParseError):
            list(flatten(42, ("items",)))

    def test_array_document_without_path_rejected(self):
        with pytest.raises(ResponseParseError):
            list(flatten([{"a": 1}], ()))


# ---------------------------------------------------------------------------
# parse_body
# ---------------------------------------------------------------------------

class TestParsers:
    def test_json_fallback(self):
        assert parse_body('{"a": [1, 2]}', "application/vnd.api+json") == {"a": [1, 2]}
        assert parse_body("[1]", None) == [1]

    def test_bad_json(self):
        with pytest.raises(ResponseParseError, match="JSON"):
            parse_body("{oops", "application/json")

    def test_csv(self):
        body = "id,name\n1,Ada\n2,Linus\n"
        assert parse_body(body, "text/csv; charset=utf-8") == [
            {"id": "1", "name": "Ada"},
            {"id": "2", "name": "Linus"},
        ]

    def test_xml_repeated_and_singleton_children(self):
        body = (
            "<response><company>Acme</company>"
            "<departments><id>1</id><name>Eng</name>"
            "<employees><id>10</id></employees><employees><id>11</id></employees>"
            "</departments></response>"
        )
        doc = parse_body(body, "application/xml")
        assert doc["company"] == "Acme"
        assert isinstance(doc["departments"], list) and len(doc["departments"]) == 1
        dept = doc["departments"][0]
        assert dept["id"] == 1
        assert [e["id"] for e in dept["employees"]] == [10, 11]

    def test_xml_typed_text(self):
        doc = parse_body("<r><a>1.5</a><b>x</b><c/></r>", "text/xml")
        assert doc == {"a": 1.5, "b": "x", "c": None}

    def test_xml_flattens_like_json(self):
        body = (
            "<response><company>Acme</company>"
            "<departments><id>1</id><employees><id>10</id></employees></departments>"
            "<departments><id>2</id><employees><id>20</id></employees></departments>"
            "</response>"
        )
        rows = list(flatten(parse_body(body, "application/xml"), ("departments", "employees")))
        assert [r["departments.employees.id"] for r in rows] == [10, 20]
        assert all(r["company"] == "Acme" for r in rows)

    def test_bad_xml(self):
        with pytest.raises(ResponseParseError, match="XML"):
            parse_body("<a><b></a>", "application/xml")
