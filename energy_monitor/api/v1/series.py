"""
Series API endpoints.

Lists the queryable series of a system.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_series_manager, get_system_repository
from ..schemas import SeriesListResponse, SeriesResponse
from ...application.services import SeriesManager
from ...config import get_settings
from ...domain.exceptions import EntityNotFoundException, ValidationException
from ...domain.services.aggregation_rules import Interval
from ...domain.services.series_filter import SeriesFilter
from ...infrastructure.database.repositories import SystemRepository

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/systems", tags=["Series"])


def parse_interval(raw: Optional[str]) -> Optional[Interval]:
    """
    Raises:
        ValidationException: Not one of the supported intervals.
    """
    if raw is None or not raw.strip():
        return None
    try:
        return Interval(raw.strip())
    except ValueError:
        supported = ", ".join(interval.value for interval in Interval)
        raise ValidationException(
            f"Invalid interval '{raw}'",
            errors={"interval": [f"must be one of: {supported}"]},
            code="INVALID_INTERVAL",
        )


@router.get(
    "/{system_id}/series",
    response_model=SeriesListResponse,
    summary="List series",
    description="List the queryable series of a system, optionally filtered.",
)
async def list_series(
    system_id: int,
    filter: Optional[str] = Query(default=None, description="Comma-separated glob patterns"),
    interval: Optional[str] = Query(default=None, description="5m or 1d"),
    typed_only: bool = Query(default=False, alias="typedOnly"),
    system_repo: SystemRepository = Depends(get_system_repository),
    manager: SeriesManager = Depends(get_series_manager),
) -> SeriesListResponse:
    """
    List series for a system.

    Validation happens before any lookup; composite systems resolve through
    their mappings.
    """
    series_filter = SeriesFilter.parse(filter, max_length=settings.series.max_filter_length)
    parsed_interval = parse_interval(interval)

    system = await system_repo.get_by_id(system_id)
    if system is None:
        raise EntityNotFoundException("System", system_id)

    series = await manager.get_series_for_system(
        system,
        series_filter=series_filter,
        interval=parsed_interval,
        typed_only=typed_only,
    )

    return SeriesListResponse(
        system_id=system_id,
        count=len(series),
        series=[SeriesResponse.from_series(s) for s in series],
    )
