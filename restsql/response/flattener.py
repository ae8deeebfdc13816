from __future__ import annotations
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from restsql.errors import ResponseParseError

logger = logging.getLogger(__name__)

FlatRow = Dict[str, Any]


def flatten(document: Any, deepest_array_path: Sequence[str]) -> Iterator[FlatRow]:
    """
    Unroll a response document into one flat row per element of its
    deepest repeating collection.

    Every row carries the document's root scalar fields and the scalar
    fields of each ancestor element, keyed by dotted source path. Nested
    objects flatten into dotted keys; sibling collections are not expanded.

    Raises:
        ResponseParseError: if the document is neither an object nor an
            array, or is an array while no array path is known.
    """
    path = tuple(deepest_array_path)

    if not path:
        if not isinstance(document, Mapping):
            raise ResponseParseError(
                f"Expected an object response, got {type(document).__name__}"
            )
        yield scalar_fields(document)
        return

    if isinstance(document, list):
        root_fields: FlatRow = {}
        collection: Any = document
    elif isinstance(document, Mapping):
        root_fields = scalar_fields(document, skip=path[0])
        collection = resolve(document, path[0])
    else:
        raise ResponseParseError(
            f"Expected an object or array response, got {type(document).__name__}"
        )

    if collection is None:
        logger.debug("Response has no '%s' collection; no rows", path[0])
        return
    yield from _walk(collection, path, 0, (root_fields,))


def _walk(
    collection: Any,
    path: Tuple[str, ...],
    level: int,
    ancestors: Tuple[FlatRow, ...],
) -> Iterator[FlatRow]:
    prefix = ".".join(path[: level + 1])
    last = level + 1 == len(path)
    child = None if last else f"{prefix}.{path[level + 1]}"

    for element in _as_list(collection):
        if isinstance(element, Mapping):
            own = scalar_fields(element, prefix, skip=child)
        elif isinstance(element, list):
            continue
        else:
            own = {prefix: element}

        if last:
            row: FlatRow = {}
            for fields in ancestors:
                row.update(fields)
            row.update(own)
            yield row
            continue

        if not isinstance(element, Mapping):
            continue
        nested = resolve(element, path[level + 1])
        if nested is None:
            nested = _recover(element, path[level + 1])
        if nested is None:
            logger.debug("No '%s' under '%s' element; branch dropped", path[level + 1], prefix)
            continue
        yield from _walk(nested, path, level + 1, ancestors + (own,))


def _recover(element: Mapping[str, Any], segment: str) -> Optional[Any]:
    """
    Look for `segment` one level down: inside the elements of the
    element's own array-valued fields. First hit wins.
    """
    for value in element.values():
        if not isinstance(value, list):
            continue
        for item in value:
            if isinstance(item, Mapping):
                found = resolve(item, segment)
                if found is not None:
                    return found
    return None


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def resolve(obj: Any, dotted: str) -> Optional[Any]:
    """Follow a dotted object path; None when any step is missing."""
    current = obj
    for part in dotted.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def scalar_fields(obj: Mapping[str, Any], prefix: str = "", skip: Optional[str] = None) -> FlatRow:
    """Non-collection fields of obj, nested objects flattened into dotted keys."""
    out: FlatRow = {}
    for key, value in obj.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if dotted == skip:
            continue
        if isinstance(value, Mapping):
            out.update(scalar_fields(value, dotted, skip))
        elif isinstance(value, list):
            continue
        else:
            out[dotted] = value
    return out
