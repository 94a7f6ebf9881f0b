"""
Pydantic schemas for vendor sync requests.
"""
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ...config import get_settings
from ...domain.entities.sync import SyncAction, SyncRequest

settings = get_settings()


class SyncRequestSchema(BaseModel):
    """Request to sync days of vendor data for one system."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    system_id: int = Field(..., gt=0)
    action: SyncAction
    start_date: date
    days: int = Field(default=1, ge=1)
    dry_run: bool = False
    show_sample: bool = False

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: int) -> int:
        if v > settings.sync.max_days:
            raise ValueError(f"days must be between 1 and {settings.sync.max_days}")
        return v

    def to_domain(self) -> SyncRequest:
        return SyncRequest(
            system_id=self.system_id,
            action=self.action,
            start_date=self.start_date,
            days=self.days,
            dry_run=self.dry_run,
            show_sample=self.show_sample,
        )
