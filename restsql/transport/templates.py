from __future__ import annotations
import datetime as dt
import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from jinja2 import Environment, TemplateError, select_autoescape

from restsql.config.models import RequestConfig
from restsql.connectors.base import PageContext
from restsql.errors import ContextConversionError, TemplateRenderError
from restsql.transport.http import HttpRequest

logger = logging.getLogger(__name__)

_env = Environment(
    autoescape=select_autoescape(enabled_extensions=(), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
)


def prepare_value(value: Any) -> Any:
    """
    Make a value safe to place in the template context.

    Raises:
        ContextConversionError: for values with no JSON-like representation.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [prepare_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): prepare_value(v) for k, v in value.items()}
    raise ContextConversionError(
        f"Cannot use value of type {type(value).__name__} in a request template: {value!r}"
    )


class RequestRenderer:
    """Builds the per-page template context and renders URL, body and headers."""

    def __init__(self, request_cfg: RequestConfig, properties: Optional[Dict[str, Any]] = None) -> None:
        self._cfg = request_cfg
        self._properties = dict(properties or {})

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def build_context(self, page: PageContext) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {}
        # service properties are also reachable as top-level names
        for key, value in self._properties.items():
            ctx[key] = prepare_value(value)
        ctx["properties"] = prepare_value(self._properties)

        for column, value in page.filters.request_values.items():
            ctx[column] = prepare_value(value)

        ctx.update({
            "offset": page.offset,
            "limit": page.limit,
            "pageStart": page.start_page,
            "page": page.page,
            "name": page.table_name,
        })
        if page.projects:
            ctx["projects"] = list(page.projects)
        if page.filters.dnf:
            ctx["filters_dnf"] = [
                [prepare_value(c.to_context()) for c in group] for group in page.filters.dnf
            ]
        if page.filters.cnf:
            ctx["filters_cnf"] = [
                [prepare_value(c.to_context()) for c in group] for group in page.filters.cnf
            ]
        return ctx

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, context: Dict[str, Any], address: str) -> HttpRequest:
        """
        Raises:
            TemplateRenderError: a template fails to compile or render.
        """
        path = self._render(self._cfg.url_template or self._cfg.url, context)
        body = self._render(self._cfg.body_template, context) if self._cfg.body_template else None

        headers = self._render_headers(context)
        if body is not None and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = self._cfg.content_type

        return HttpRequest(
            method=self._cfg.method,
            url=join_url(address, path),
            headers=headers,
            body=body,
            connect_timeout_s=self._cfg.connect_timeout_s,
            response_timeout_s=self._cfg.response_timeout_s,
        )

    def _render_headers(self, context: Dict[str, Any]) -> Dict[str, str]:
        if self._cfg.header_template:
            return parse_headers(self._render(self._cfg.header_template, context))
        return {
            name: self._render(value, context)
            for name, value in self._cfg.headers.items()
        }

    @staticmethod
    def _render(template: str, context: Dict[str, Any]) -> str:
        try:
            return _env.from_string(template).render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render request template: {exc}") from exc


def parse_headers(text: str) -> Dict[str, str]:
    """Rendered header template: a JSON object, or one 'Name: value' per line."""
    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise TemplateRenderError(f"Header template is not valid JSON: {exc}") from exc
        return {str(k): str(v) for k, v in parsed.items()}

    headers: Dict[str, str] = {}
    for line in stripped.splitlines():
        if not line.strip():
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise TemplateRenderError(f"Malformed header line: {line!r}")
        headers[name.strip()] = value.strip()
    return headers


def join_url(address: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    if not path:
        return address
    return address.rstrip("/") + "/" + path.lstrip("/")
