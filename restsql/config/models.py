from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class PagingConfig(BaseModel):
    """Offset/limit paging for one table. page_size <= 0 disables paging."""

    start_page: int = 0
    page_size: int = 0


class RequestConfig(BaseModel):
    """How one table's pages are requested from the remote API."""

    # Tried in order for the first page; "mock" serves TableConfig.mock_pages.
    addresses: List[str] = Field(default_factory=list)
    method: str = "GET"
    url: str = ""
    url_template: Optional[str] = None
    body_template: Optional[str] = None
    header_template: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    content_type: str = "application/json"

    connect_timeout_s: float = 10.0
    response_timeout_s: float = 30.0

    paging: PagingConfig = Field(default_factory=PagingConfig)

    @field_validator("addresses", mode="before")
    @classmethod
    def _split_addresses(cls, value: Any) -> Any:
        # "http://a, http://b" is accepted as shorthand for a list
        if isinstance(value, str):
            return [a.strip() for a in value.split(",") if a.strip()]
        return value

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def is_mock(self) -> bool:
        return self.addresses == ["mock"]


class InputField(BaseModel):
    """A declared request-side input (query parameter or filterable field)."""

    name: str
    type: str = "string"
    format: Optional[str] = None
    column_type: Optional[str] = None   # explicit scalar override


class TableConfig(BaseModel):
    name: str
    response: Dict[str, Any]
    parameters: List[InputField] = Field(default_factory=list)
    filterable_fields: List[InputField] = Field(default_factory=list)
    request: RequestConfig = Field(default_factory=RequestConfig)
    # Raw page bodies (already decoded) served in mock mode, in order.
    mock_pages: List[Any] = Field(default_factory=list)

    @field_validator("parameters", "filterable_fields", mode="before")
    @classmethod
    def _names_as_inputs(cls, value: Any) -> Any:
        # A bare name is a string-typed input
        if isinstance(value, list):
            return [{"name": v} if isinstance(v, str) else v for v in value]
        return value


class ServiceConfig(BaseModel):
    """
    Complete, validated description of one REST service.

    Loaded from a YAML file by ServiceRegistry. Every table in the service
    becomes a SQL table named "{schema_name}.{table.name}".
    """

    schema_name: str
    description: str = ""

    # Reusable object descriptions referenced as "#/components/<Name>".
    components: Dict[str, Any] = Field(default_factory=dict)

    # Service-wide values exposed to request templates as `properties`.
    properties: Dict[str, Any] = Field(default_factory=dict)

    tables: List[TableConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_table_names(self) -> "ServiceConfig":
        seen = set()
        for table in self.tables:
            if table.name in seen:
                raise ValueError(
                    f"Duplicate table '{table.name}' in schema '{self.schema_name}'"
                )
            seen.add(table.name)
        return self

    def qualified_name(self, table: TableConfig) -> str:
        return f"{self.schema_name}.{table.name}"
