from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from restsql.errors import SchemaBuildError, UnresolvedReferenceError

MAPPINGS_KEY = "x-column-mappings"

_REF_PREFIXES = ("#/components/schemas/", "#/components/")


@dataclass(frozen=True)
class FieldMapping:
    """Output column for one source field, with an optional type override."""

    name: str
    type: Optional[str] = None


@dataclass(frozen=True)
class LeafNode:
    kind: str
    format: Optional[str] = None


@dataclass(frozen=True)
class ArrayNode:
    items: "Node"


@dataclass(frozen=True)
class ObjectNode:
    properties: Tuple[Tuple[str, "Node"], ...] = ()
    mappings: Mapping[str, FieldMapping] = field(default_factory=dict)


Node = Union[LeafNode, ArrayNode, ObjectNode]


def parse_description(raw: Any, components: Optional[Dict[str, Any]] = None) -> Node:
    """
    Convert a JSON-schema-like description into the Node union.

    `$ref` values of the form "#/components/<Name>" (or
    "#/components/schemas/<Name>") are resolved against `components`.

    Raises:
        UnresolvedReferenceError: if a reference names no component.
        SchemaBuildError: on a reference cycle or a malformed node.
    """
    return _parse(raw, components or {}, ())


def _resolve_ref(ref: str, components: Dict[str, Any]) -> Tuple[str, Any]:
    name = ref
    for prefix in _REF_PREFIXES:
        if ref.startswith(prefix):
            name = ref[len(prefix):]
            break
    if name not in components:
        raise UnresolvedReferenceError(ref)
    return name, components[name]


def _parse(raw: Any, components: Dict[str, Any], resolving: Tuple[str, ...]) -> Node:
    if not isinstance(raw, dict):
        raise SchemaBuildError(f"Schema node must be a mapping, got {type(raw).__name__}")

    if "$ref" in raw:
        name, target = _resolve_ref(raw["$ref"], components)
        if name in resolving:
            chain = " -> ".join(resolving + (name,))
            raise SchemaBuildError(f"Recursive schema reference: {chain}")
        return _parse(target, components, resolving + (name,))

    kind = raw.get("type")
    if kind is None:
        if "properties" in raw:
            kind = "object"
        elif "items" in raw:
            kind = "array"

    if kind == "array":
        items = raw.get("items")
        if items is None:
            raise SchemaBuildError("Array schema without 'items'")
        return ArrayNode(items=_parse(items, components, resolving))

    if kind == "object" and raw.get("properties"):
        properties = tuple(
            (name, _parse(child, components, resolving))
            for name, child in raw["properties"].items()
        )
        return ObjectNode(properties=properties, mappings=_parse_mappings(raw.get(MAPPINGS_KEY)))

    # Free-form objects have no fields to walk; they surface as strings.
    return LeafNode(kind=str(kind or "string"), format=raw.get("format"))


def _parse_mappings(raw: Any) -> Dict[str, FieldMapping]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SchemaBuildError(f"'{MAPPINGS_KEY}' must be a mapping")
    mappings: Dict[str, FieldMapping] = {}
    for source, target in raw.items():
        if isinstance(target, str):
            mappings[source] = FieldMapping(name=target)
        elif isinstance(target, dict) and target.get("name"):
            mappings[source] = FieldMapping(name=target["name"], type=target.get("type"))
        else:
            raise SchemaBuildError(
                f"Invalid mapping for field '{source}': expected a name or {{name, type}}"
            )
    return mappings
