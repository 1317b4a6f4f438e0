"""
Shared pydantic bases and field types for request and response schemas.

Responses are built straight from ORM rows and serialize enums by value.
Requests reject unknown fields so typos surface as 422s.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema

CENTS = Decimal("0.01")


class StandardizedModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True, populate_by_name=True)


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_default=True, validate_assignment=True)


def _to_cents(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Money cannot be a boolean")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError("Money must be a finite amount")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class Money(Decimal):
    """Two-decimal amount; accepts numbers or numeric strings, emits a JSON float."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        accepted = core_schema.union_schema(
            [
                core_schema.is_instance_schema(Decimal),
                core_schema.int_schema(),
                core_schema.float_schema(),
                core_schema.str_schema(),
            ]
        )
        return core_schema.no_info_after_validator_function(
            _to_cents,
            accepted,
            serialization=core_schema.plain_serializer_function_ser_schema(
                float, return_schema=core_schema.float_schema()
            ),
        )
