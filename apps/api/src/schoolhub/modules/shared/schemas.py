"""
Shared Schemas

The response envelope used by every endpoint, and a camelCase base model for
request and response payloads.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Payload model serialized with camelCase keys, accepting either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope for all API responses: ``{error, message, data}``."""

    error: bool = False
    message: str | None = None
    data: DataT | None = None

    @classmethod
    def ok(cls, data: DataT | None = None, message: str | None = None) -> "ApiResponse[DataT]":
        return cls(error=False, message=message, data=data)
