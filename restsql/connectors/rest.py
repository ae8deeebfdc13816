from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from restsql.config.models import RequestConfig
from restsql.connectors.base import PageContext, PageResult, PageSource
from restsql.errors import AllAddressesFailedError, TransportError
from restsql.response.parsers import parse_body
from restsql.transport.http import HttpTransport
from restsql.transport.templates import RequestRenderer

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("restsql.connector")


class RestPageSource(PageSource):
    """
    Requests pages from a REST API over the shared transport.

    The first page tries every configured address in order; the address
    that answers is pinned for the rest of the scan. Parse failures are
    never retried on another address.
    """

    def __init__(
        self,
        request_cfg: RequestConfig,
        transport: HttpTransport,
        properties: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not request_cfg.addresses:
            raise ValueError("REST table has no addresses configured")
        self._cfg = request_cfg
        self._transport = transport
        self._renderer = RequestRenderer(request_cfg, properties)
        self._pinned: Optional[str] = None

    @property
    def pinned_address(self) -> Optional[str]:
        return self._pinned

    async def fetch_page(self, context: PageContext) -> PageResult:
        """
        Raises:
            AllAddressesFailedError: no address answered the first page.
            TransportError: the pinned address failed on a later page.
            ResponseParseError: the body does not decode.
            TemplateRenderError, ContextConversionError: request rendering failed.
        """
        template_ctx = self._renderer.build_context(context)

        if self._pinned is not None:
            return await self._fetch_from(self._pinned, template_ctx, context)

        failures: List[TransportError] = []
        for address in self._cfg.addresses:
            try:
                result = await self._fetch_from(address, template_ctx, context)
            except TransportError as exc:
                logger.warning("Address %s failed for %s: %s", address, context.table_name, exc)
                if exc.address is None:
                    exc.address = address
                failures.append(exc)
                continue
            self._pinned = address
            return result
        raise AllAddressesFailedError(failures)

    async def _fetch_from(
        self, address: str, template_ctx: Dict[str, Any], context: PageContext
    ) -> PageResult:
        request = self._renderer.render(template_ctx, address)
        with tracer.start_as_current_span(
            "connector.rest.request",
            attributes={
                "http.method": request.method,
                "http.url": request.url,
                "page.offset": context.offset,
            },
        ) as span:
            response = await self._transport.send(request)
            span.set_attribute("http.status_code", response.status)
        content_type = response.content_type or self._cfg.content_type
        return PageResult(address=address, document=parse_body(response.text, content_type))
