"""Pydantic schemas for API request validation.

Query strings arrive as text; Pydantic's lax mode coerces numeric fields.
Field aliases match the camelCase parameter names the dashboard sends.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from suncast.utils.dates import is_iso_date

# -----------------------------------------------------------------------------
# Location Schemas
# -----------------------------------------------------------------------------


class Coordinates(BaseModel):
    """Schema for the <latitude>/<longitude> path of cache and forecast routes."""

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


# -----------------------------------------------------------------------------
# Historical Schemas
# -----------------------------------------------------------------------------


class HistoricalQuery(Coordinates):
    """Schema for GET /api/historical."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")
    location: str | None = Field(None, max_length=200)

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        """Validate dates are real calendar days in YYYY-MM-DD form."""
        if not is_iso_date(v):
            raise ValueError(f"Invalid date '{v}'. Expected YYYY-MM-DD")
        return v

    @field_validator("location")
    @classmethod
    def strip_location(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def validate_range(self) -> HistoricalQuery:
        """Ensure the range is not reversed."""
        if self.start_date > self.end_date:
            raise ValueError("startDate must be on or before endDate")
        return self
