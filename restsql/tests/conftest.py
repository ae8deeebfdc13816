"""Shared pytest fixtures for restsql tests."""
import pytest

from restsql.config.models import ServiceConfig

HR_COMPONENTS = {
    "Employee": {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "format": "int64"},
            "name": {"type": "string"},
            "hired": {"type": "string", "format": "date"},
        },
        "x-column-mappings": {"id": "employee_id", "name": "employee_name", "hired": "hired_on"},
    },
    "Department": {
        "type": "object",
        "properties": {
            "id": {"type": "integer"},
            "name": {"type": "string"},
            "employees": {"type": "array", "items": {"$ref": "#/components/Employee"}},
        },
        "x-column-mappings": {"id": "department_id", "name": "department_name"},
    },
}

HR_RESPONSE = {
    "type": "object",
    "properties": {
        "company": {"type": "string"},
        "departments": {"type": "array", "items": {"$ref": "#/components/Department"}},
    },
    "x-column-mappings": {"company": "company"},
}


def hr_document(company="Acme"):
    """Two departments with two employees each."""
    return {
        "company": company,
        "departments": [
            {"id": 1, "name": "Eng", "employees": [
                {"id": 10, "name": "Ada", "hired": "2020-01-02"},
                {"id": 11, "name": "Linus", "hired": "2021-03-04"},
            ]},
            {"id": 2, "name": "Ops", "employees": [
                {"id": 20, "name": "Grace", "hired": "2019-05-06"},
                {"id": 21, "name": "Ken", "hired": ""},
            ]},
        ],
    }


def hr_service(**table_overrides) -> ServiceConfig:
    table = {
        "name": "staff",
        "response": HR_RESPONSE,
        "parameters": [{"name": "region", "type": "string"}],
        "filterable_fields": [{"name": "department_name", "type": "string"}],
        "request": {"addresses": "mock"},
        "mock_pages": [hr_document()],
    }
    table.update(table_overrides)
    return ServiceConfig.model_validate({
        "schema_name": "hr",
        "components": HR_COMPONENTS,
        "properties": {"apiKey": "secret"},
        "tables": [table],
    })


@pytest.fixture
def hr_cfg() -> ServiceConfig:
    return hr_service()
