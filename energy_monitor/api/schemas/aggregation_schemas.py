"""
Pydantic schemas for daily aggregation admin operations.
"""
from datetime import date as date_type
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class DailyAggregationAction(str, Enum):
    """Admin operations on point_readings_agg_1d."""
    AGGREGATE_RANGE = "aggregate-range"
    DELETE_RANGE = "delete-range"
    REGENERATE_DATE = "regenerate-date"
    AGGREGATE_YESTERDAY = "aggregate-yesterday"
    AGGREGATE_MISSING = "aggregate-missing"
    REGENERATE_LAST_DAYS = "regenerate-last-days"


class DailyAggregationRequest(BaseModel):
    """
    Parameters for a daily aggregation action.

    start and end apply to the range actions and must be given together or
    not at all; date applies to regenerate-date and days to
    regenerate-last-days.
    """
    start: Optional[date_type] = None
    end: Optional[date_type] = None
    date: Optional[date_type] = None
    days: Optional[int] = Field(default=None, ge=1, le=366)

    @field_validator("start", "end", "date", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class DailyAggregationResponse(BaseModel):
    """Outcome of a daily aggregation action."""
    action: DailyAggregationAction
    success: bool = True
    message: str
    result: Any = None
    details: Optional[Dict[str, Any]] = None
