"""Shared pieces of the HTTP layer.

Request and response bodies use camelCase on the wire. The translation lives
only here, in ``ApiModel``; everything behind the API speaks snake_case.
"""

from datetime import datetime
from typing import Optional

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.clock import as_utc


class ApiModel(BaseModel):
    """Base model for API bodies (camelCase aliases, snake_case attributes)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    """Field validator helper: attach UTC to timestamps read back from the store."""
    return as_utc(value)


def get_requester_identity(request: Request) -> str:
    """Network identity of the caller, for audit purposes."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first[:255]
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
