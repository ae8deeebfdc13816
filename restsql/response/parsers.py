from __future__ import annotations
import csv
import io
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, List, Optional, Tuple

from restsql.errors import ResponseParseError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Individual formats
# ---------------------------------------------------------------------------

def parse_json(body: str) -> Any:
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Failed to parse JSON response: {exc}") from exc


def parse_csv(body: str) -> List[Dict[str, Any]]:
    """Header row plus data rows → list of dicts. Values stay strings."""
    try:
        reader = csv.DictReader(io.StringIO(body))
        return [dict(row) for row in reader]
    except csv.Error as exc:
        raise ResponseParseError(f"Failed to parse CSV response: {exc}") from exc


def parse_xml(body: str) -> Any:
    """
    XML → dict tree. The root element is dropped; its children form the
    document. Repeated sibling elements become a list, and a complex child
    that occurs once becomes a one-element list so that collections keep
    their shape whether they hold one element or many.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise ResponseParseError(f"Failed to parse XML response: {exc}") from exc
    converted = _element_to_value(root)
    return converted if isinstance(converted, dict) else {}


def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    if not children and not element.attrib:
        return _typed_text(element.text)

    grouped: Dict[str, List[Any]] = {}
    for attr, value in element.attrib.items():
        grouped.setdefault(attr, []).append(_typed_text(value))
    for child in children:
        grouped.setdefault(_local_name(child.tag), []).append(_element_to_value(child))

    result: Dict[str, Any] = {}
    for name, values in grouped.items():
        if len(values) > 1 or isinstance(values[0], dict):
            result[name] = values
        else:
            result[name] = values[0]
    return result


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _typed_text(text: Optional[str]) -> Any:
    if text is None:
        return None
    value = text.strip()
    if value == "":
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


# ---------------------------------------------------------------------------
# Content-type dispatch
# ---------------------------------------------------------------------------

Parser = Callable[[str], Any]

# Evaluated in order, first match wins. JSON is the fallback.
PARSER_CHAIN: List[Tuple[Callable[[str], bool], Parser]] = [
    (lambda ct: "csv" in ct, parse_csv),
    (lambda ct: "xml" in ct, parse_xml),
    (lambda ct: True, parse_json),
]


def parse_body(body: str, content_type: Optional[str]) -> Any:
    """
    Decode a response body into a document tree.

    Raises:
        ResponseParseError: if the body does not decode in the selected format.
    """
    ct = (content_type or "").lower()
    for matches, parser in PARSER_CHAIN:
        if matches(ct):
            logger.debug("Parsing %d-byte response with %s", len(body), parser.__name__)
            return parser(body)
    return parse_json(body)
