from __future__ import annotations
from typing import List, Optional


class RestSqlError(Exception):
    """Root of every error raised by the translation layer."""


# ---------------------------------------------------------------------------
# Configuration errors: raised before any request is issued
# ---------------------------------------------------------------------------

class SchemaBuildError(RestSqlError, ValueError):
    """The hierarchical description cannot be turned into a column catalog."""


class UnresolvedReferenceError(SchemaBuildError):
    def __init__(self, ref: str) -> None:
        super().__init__(f"Unresolved schema reference: '{ref}'")
        self.ref = ref


class FilterValidationError(RestSqlError, ValueError):
    """A predicate cannot be expressed against a REQUEST-only column."""

    def __init__(self, field_name: str, operator: str) -> None:
        super().__init__(
            f"Field '{field_name}' is request-only and supports only the '=' "
            f"operator, got '{operator}'. Use '=' or declare the field as "
            f"RESPONSE or BOTH."
        )
        self.field_name = field_name
        self.operator = operator


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class TransportError(RestSqlError, RuntimeError):
    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        status: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.address = address
        self.status = status
        self.timed_out = timed_out


class AllAddressesFailedError(TransportError):
    """Every configured address failed for the first page of a scan."""

    def __init__(self, failures: List[TransportError]) -> None:
        details = "; ".join(f"{f.address}: {f}" for f in failures)
        super().__init__(
            f"All requests attempts failed: {details}",
            timed_out=bool(failures) and all(f.timed_out for f in failures),
        )
        self.failures = list(failures)


# ---------------------------------------------------------------------------
# Parse / conversion errors
# ---------------------------------------------------------------------------

class ResponseParseError(RestSqlError, RuntimeError):
    """A response body or document does not have the expected shape."""


class ValueConversionError(RestSqlError, RuntimeError):
    def __init__(self, value: object, scalar_type: str, column: Optional[str] = None) -> None:
        where = f" for column '{column}'" if column else ""
        super().__init__(f"Cannot convert {value!r} to {scalar_type}{where}")
        self.value = value
        self.scalar_type = scalar_type
        self.column = column


class ContextConversionError(RestSqlError, RuntimeError):
    """A value cannot be placed into the request template context."""


class TemplateRenderError(RestSqlError, RuntimeError):
    """A request template failed to render."""
