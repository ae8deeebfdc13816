"""Tests for description parsing and the hierarchical mapping builder."""
import pytest

from restsql.config.models import TableConfig
from restsql.errors import SchemaBuildError, UnresolvedReferenceError
from restsql.schema.builder import MappingBuilder
from restsql.schema.description import ArrayNode, LeafNode, ObjectNode, parse_description
from restsql.schema.models import Direction
from restsql.schema.types import ScalarType

from conftest import HR_COMPONENTS, hr_service


def _table(response, parameters=None, filterable_fields=None) -> TableConfig:
    return TableConfig(
        name="t",
        response=response,
        parameters=parameters or [],
        filterable_fields=filterable_fields or [],
    )


def _discover(cfg=None):
    cfg = cfg or hr_service()
    return MappingBuilder().discover_columns(cfg.tables[0], cfg.components)


# ---------------------------------------------------------------------------
# parse_description
# ---------------------------------------------------------------------------

class TestParseDescription:
    def test_three_node_kinds(self):
        node = parse_description({
            "type": "object",
            "properties": {
                "a": {"type": "integer"},
                "b": {"type": "array", "items": {"type": "string"}},
            },
        })
        assert isinstance(node, ObjectNode)
        props = dict(node.properties)
        assert props["a"] == LeafNode("integer")
        assert props["b"] == ArrayNode(LeafNode("string"))

    def test_type_inferred_from_shape(self):
        node = parse_description({"items": {"properties": {"x": {"type": "string"}}}})
        assert isinstance(node, ArrayNode)
        assert isinstance(node.items, ObjectNode)

    def test_object_without_properties_is_leaf(self):
        assert parse_description({"type": "object"}) == LeafNode("object")

    def test_reference_resolved(self):
        node = parse_description({"$ref": "#/components/schemas/Employee"}, HR_COMPONENTS)
        assert isinstance(node, ObjectNode)
        assert node.mappings["id"].name == "employee_id"

    def test_unresolved_reference(self):
        with pytest.raises(UnresolvedReferenceError, match="Missing"):
            parse_description({"$ref": "#/components/Missing"}, {})

    def test_recursive_reference(self):
        components = {
            "Node": {
                "type": "object",
                "properties": {"child": {"$ref": "#/components/Node"}},
            }
        }
        with pytest.raises(SchemaBuildError, match="Recursive"):
            parse_description({"$ref": "#/components/Node"}, components)

    def test_mapping_with_type_override(self):
        node = parse_description({
            "type": "object",
            "properties": {"n": {"type": "string"}},
            "x-column-mappings": {"n": {"name": "n_col", "type": "BIGINT"}},
        })
        assert node.mappings["n"].name == "n_col"
        assert node.mappings["n"].type == "BIGINT"


# ---------------------------------------------------------------------------
# MappingBuilder
# ---------------------------------------------------------------------------

class TestMappingBuilder:
    def test_columns_and_paths(self):
        table = _discover()
        cols = {c.name: c for c in table.columns}
        assert cols["company"].source_path == ("company",)
        assert cols["department_id"].source_path == ("departments", "id")
        assert cols["employee_id"].source_path == ("departments", "employees", "id")
        assert cols["employee_id"].scalar_type == ScalarType.LONG
        assert cols["hired_on"].scalar_type == ScalarType.DATE

    def test_repeated_source_names_get_unique_columns(self):
        table = _discover()
        names = table.column_names()
        assert len(names) == len(set(names))
        assert table.output_names["id"] == frozenset({"department_id", "employee_id"})
        assert table.source_names["employee_name"] == "name"

    def test_deepest_array_path(self):
        assert _discover().deepest_array_path == ("departments", "employees")

    def test_unmapped_fields_excluded(self):
        table = MappingBuilder().discover_columns(_table({
            "type": "object",
            "properties": {"a": {"type": "string"}, "b": {"type": "string"}},
            "x-column-mappings": {"a": "a"},
        }))
        assert table.column_names() == ["a"]

    def test_root_array(self):
        table = MappingBuilder().discover_columns(_table({
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "integer"}},
                "x-column-mappings": {"id": "id"},
            },
        }))
        assert table.deepest_array_path == ("$",)
        assert table.columns[0].row_key == "$.id"

    def test_dotted_segment_through_objects(self):
        table = MappingBuilder().discover_columns(_table({
            "type": "object",
            "properties": {
                "data": {
                    "type": "object",
                    "properties": {
                        "items": {"type": "array", "items": {
                            "type": "object",
                            "properties": {"v": {"type": "number"}},
                            "x-column-mappings": {"v": "v"},
                        }},
                    },
                },
            },
        }))
        assert table.deepest_array_path == ("data.items",)
        assert table.column("v").row_key == "data.items.v"

    def test_first_longest_path_wins_tie(self):
        table = MappingBuilder().discover_columns(_table({
            "type": "object",
            "properties": {
                "first": {"type": "array", "items": {"type": "string"}},
                "second": {"type": "array", "items": {"type": "string"}},
            },
        }))
        assert table.deepest_array_path == ("first",)

    def test_arrays_of_arrays_not_descended(self):
        table = MappingBuilder().discover_columns(_table({
            "type": "object",
            "properties": {
                "grid": {"type": "array", "items": {"type": "array", "items": {"type": "integer"}}},
            },
        }))
        assert table.deepest_array_path == ("grid",)

    def test_duplicate_output_name_rejected(self):
        with pytest.raises(SchemaBuildError, match="Duplicate column 'id'"):
            MappingBuilder().discover_columns(_table({
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "rows": {"type": "array", "items": {
                        "type": "object",
                        "properties": {"id": {"type": "integer"}},
                        "x-column-mappings": {"id": "id"},
                    }},
                },
                "x-column-mappings": {"id": "id"},
            }))

    def test_request_only_input(self):
        table = _discover()
        region = table.column("region")
        assert region.direction == Direction.REQUEST
        assert region.source_path == ("region",)

    def test_input_matching_output_name_promoted(self):
        table = _discover()
        assert table.column("department_name").direction == Direction.BOTH
        assert table.column("employee_name").direction == Direction.RESPONSE

    def test_input_matching_source_name_promotes_every_column(self):
        cfg = hr_service(filterable_fields=[{"name": "name"}])
        table = _discover(cfg)
        assert table.column("department_name").direction == Direction.BOTH
        assert table.column("employee_name").direction == Direction.BOTH
        assert table.column("name") is None

    def test_paging_carried(self):
        cfg = hr_service(request={"addresses": "mock", "paging": {"start_page": 1, "page_size": 50}})
        table = _discover(cfg)
        assert table.paging.page_size == 50
        assert table.paging.start_page == 1
