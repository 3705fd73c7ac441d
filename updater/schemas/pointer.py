"""Active release pointer schema."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr, field_serializer, field_validator

from updater.schemas.manifest import validate_release_id
from updater.services.datetime_service import format_iso, parse_datetime


class ActivePointer(BaseModel):
    """Persisted record of the active release and the last update check.

    Wire format: ``{"id": "v1", "updated": "2024-05-01T10:00:00+00:00"}``.
    """

    model_config = ConfigDict(frozen=True)

    id: StrictStr
    updated: datetime

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return validate_release_id(value)

    @field_validator("updated", mode="before")
    @classmethod
    def _parse_updated(cls, value: Any) -> datetime:
        if not isinstance(value, str | datetime):
            raise ValueError("updated must be an ISO-8601 string")
        return parse_datetime(value)

    @field_serializer("updated")
    def _serialize_updated(self, value: datetime) -> str:
        return format_iso(value)
