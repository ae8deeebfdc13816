from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from restsql.config.models import ServiceConfig, TableConfig
from restsql.config.registry import ServiceRegistry
from restsql.connectors.base import PageSource
from restsql.connectors.rest import RestPageSource
from restsql.connectors.static import StaticPageSource
from restsql.schema.builder import MappingBuilder
from restsql.schema.models import Table
from restsql.transport.http import HttpTransport

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    service: ServiceConfig
    config: TableConfig
    table: Table

    def page_source(self, transport: Optional[HttpTransport]) -> PageSource:
        """A fresh page source for one scan."""
        if self.config.request.is_mock:
            return StaticPageSource(self.config.mock_pages)
        if transport is None:
            raise RuntimeError(f"No HTTP transport available for table '{self.table.name}'")
        return RestPageSource(self.config.request, transport, self.service.properties)


def build_catalog(registry: ServiceRegistry) -> Dict[str, CatalogEntry]:
    """
    Discover the columns of every configured table, keyed by
    "{schema_name}.{table}".

    Raises:
        SchemaBuildError: if any table's description is invalid.
    """
    builder = MappingBuilder()
    catalog: Dict[str, CatalogEntry] = {}
    for service in registry.all_services():
        for table_cfg in service.tables:
            table = builder.discover_columns(table_cfg, service.components)
            catalog[service.qualified_name(table_cfg)] = CatalogEntry(service, table_cfg, table)
    logger.info("Catalog built: %d table(s)", len(catalog))
    return catalog
