"""Shared pydantic base for persisted records."""

import time
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current time as integer milliseconds, the timestamp unit of persisted records."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class CamelModel(BaseModel):
    """
    Base model whose JSON form uses camelCase keys.

    Persisted blobs keep the camelCase shape (createdAt, floorRange, ...)
    while Python code uses snake_case attributes. Dump with by_alias=True.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
