from __future__ import annotations
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Tuple

from restsql.config.models import InputField, TableConfig
from restsql.errors import SchemaBuildError
from restsql.schema.description import ArrayNode, LeafNode, Node, ObjectNode, parse_description
from restsql.schema.models import ROOT_SEGMENT, Column, Direction, Table
from restsql.schema.types import map_type

logger = logging.getLogger(__name__)


class MappingBuilder:
    """
    Turns a table's hierarchical response description into a flat column
    catalog.

    Only fields named in an object's column-mapping table become columns.
    Response fields are RESPONSE; declared inputs that match a response
    column promote it to BOTH, the rest become REQUEST-only columns.
    """

    def discover_columns(
        self, table_cfg: TableConfig, components: Optional[Dict[str, Any]] = None
    ) -> Table:
        """
        Raises:
            SchemaBuildError: unresolved or recursive reference, duplicate
                output column name, unknown type override.
        """
        root = parse_description(table_cfg.response, components)

        columns: List[Column] = []
        if isinstance(root, ArrayNode):
            self._collect_columns(root.items, (ROOT_SEGMENT,), columns)
        else:
            self._collect_columns(root, (), columns)

        self._check_unique(columns, table_cfg.name)
        columns = self._apply_inputs(
            columns, list(table_cfg.parameters) + list(table_cfg.filterable_fields)
        )

        source_names = {c.name: c.source_name for c in columns}
        grouped: Dict[str, Set[str]] = {}
        for col in columns:
            grouped.setdefault(col.source_name, set()).add(col.name)

        table = Table(
            name=table_cfg.name,
            columns=columns,
            deepest_array_path=self.deepest_array_path(root),
            paging=table_cfg.request.paging,
            source_names=source_names,
            output_names={k: frozenset(v) for k, v in grouped.items()},
        )
        logger.info(
            "Discovered table %s: %d column(s), array path %s",
            table.name, len(columns), list(table.deepest_array_path),
        )
        return table

    # ------------------------------------------------------------------
    # Response fields
    # ------------------------------------------------------------------

    def _collect_columns(
        self, node: Node, path: Tuple[str, ...], out: List[Column]
    ) -> None:
        if not isinstance(node, ObjectNode):
            return
        for field_name, child in node.properties:
            child_path = path + (field_name,)
            mapping = node.mappings.get(field_name)

            if isinstance(child, LeafNode):
                if mapping:
                    out.append(Column(
                        name=mapping.name,
                        scalar_type=map_type(child.kind, child.format, mapping.type),
                        source_path=child_path,
                    ))
            elif isinstance(child, ArrayNode):
                if isinstance(child.items, LeafNode):
                    if mapping:
                        out.append(Column(
                            name=mapping.name,
                            scalar_type=map_type(
                                child.items.kind, child.items.format, mapping.type
                            ),
                            source_path=child_path,
                        ))
                else:
                    # arrays of arrays are not descended
                    self._collect_columns(child.items, child_path, out)
            elif isinstance(child, ObjectNode):
                self._collect_columns(child, child_path, out)

    @staticmethod
    def _check_unique(columns: List[Column], table_name: str) -> None:
        seen: Dict[str, Column] = {}
        for col in columns:
            if col.name in seen:
                raise SchemaBuildError(
                    f"Duplicate column '{col.name}' in table '{table_name}': "
                    f"{seen[col.name].row_key} and {col.row_key}"
                )
            seen[col.name] = col

    # ------------------------------------------------------------------
    # Declared inputs
    # ------------------------------------------------------------------

    def _apply_inputs(
        self, columns: List[Column], inputs: List[InputField]
    ) -> List[Column]:
        result = list(columns)
        for inp in inputs:
            by_name = [i for i, c in enumerate(result) if c.name == inp.name]
            if not by_name:
                by_name = [i for i, c in enumerate(result) if c.source_name == inp.name]

            if not by_name:
                result.append(Column(
                    name=inp.name,
                    scalar_type=map_type(inp.type, inp.format, inp.column_type),
                    source_path=(inp.name,),
                    direction=Direction.REQUEST,
                ))
                continue

            for i in by_name:
                if result[i].direction is Direction.RESPONSE:
                    result[i] = replace(result[i], direction=Direction.BOTH)
        return result

    # ------------------------------------------------------------------
    # Deepest array path
    # ------------------------------------------------------------------

    def deepest_array_path(self, root: Node) -> Tuple[str, ...]:
        """
        Longest chain of nested array boundaries, as segments of dotted
        object paths. The first chain found wins a tie.
        """
        best: List[Tuple[str, ...]] = [()]
        self._walk_arrays(root, (), (), best)
        return best[0]

    def _walk_arrays(
        self,
        node: Node,
        segments: Tuple[str, ...],
        pending: Tuple[str, ...],
        best: List[Tuple[str, ...]],
    ) -> None:
        if isinstance(node, ArrayNode):
            segment = ".".join(pending) if pending else ROOT_SEGMENT
            current = segments + (segment,)
            if len(current) > len(best[0]):
                best[0] = current
            if isinstance(node.items, ObjectNode):
                self._walk_arrays(node.items, current, (), best)
        elif isinstance(node, ObjectNode):
            for field_name, child in node.properties:
                self._walk_arrays(child, segments, pending + (field_name,), best)
