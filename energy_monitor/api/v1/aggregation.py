"""
Daily aggregation admin endpoints.

Thin wrappers over DailyRollupService; validation lives in the service.
"""
import dataclasses
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends

from ..dependencies import get_rollup_service
from ..schemas import (
    DailyAggregationAction,
    DailyAggregationRequest,
    DailyAggregationResponse,
)
from ...application.services import DailyRollupService
from ...domain.exceptions import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/aggregation", tags=["Aggregation"])


@router.post(
    "/daily/{action}",
    response_model=DailyAggregationResponse,
    summary="Run a daily aggregation action",
    description="Aggregate, delete or regenerate point_readings_agg_1d rows.",
)
async def run_daily_aggregation(
    action: DailyAggregationAction,
    params: Optional[DailyAggregationRequest] = Body(default=None),
    service: DailyRollupService = Depends(get_rollup_service),
) -> DailyAggregationResponse:
    """
    Run one admin action.

    Range actions take start and end together or neither; without them the
    range is the earliest 5-minute data through yesterday.
    """
    params = params or DailyAggregationRequest()
    logger.info(f"Daily aggregation action {action.value} requested")

    if action is DailyAggregationAction.AGGREGATE_RANGE:
        result = await service.aggregate_range(params.start, params.end)
        return DailyAggregationResponse(
            action=action,
            message=(
                f"Aggregated {result.points_aggregated} points for "
                f"{result.systems_processed} systems from {result.start_date} to {result.end_date}"
            ),
            result=dataclasses.asdict(result),
        )

    if action is DailyAggregationAction.DELETE_RANGE:
        deletion = await service.delete_range(params.start, params.end)
        return DailyAggregationResponse(
            action=action,
            message=deletion.message,
            result=dataclasses.asdict(deletion),
        )

    if action is DailyAggregationAction.REGENERATE_DATE:
        if params.date is None:
            raise ValidationException(
                "regenerate-date requires a date",
                errors={"date": ["field required"]},
            )
        result = await service.regenerate_date(params.date)
        return DailyAggregationResponse(
            action=action,
            message=f"Regenerated {result.points_aggregated} points for {params.date}",
            result=dataclasses.asdict(result),
        )

    if action is DailyAggregationAction.AGGREGATE_YESTERDAY:
        results = await service.aggregate_yesterday()
        return DailyAggregationResponse(
            action=action,
            message=f"Aggregated yesterday for {len(results)} systems",
            result=[dataclasses.asdict(r) for r in results],
        )

    if action is DailyAggregationAction.AGGREGATE_MISSING:
        results = await service.aggregate_all_missing_days()
        days = sum(r.days_aggregated for r in results)
        return DailyAggregationResponse(
            action=action,
            message=f"Aggregated {days} missing days across {len(results)} systems",
            result=[dataclasses.asdict(r) for r in results],
        )

    # REGENERATE_LAST_DAYS
    if params.days is None:
        raise ValidationException(
            "regenerate-last-days requires days",
            errors={"days": ["field required"]},
        )
    results = await service.regenerate_last_days(params.days)
    return DailyAggregationResponse(
        action=action,
        message=f"Regenerated the last {params.days} days for {len(results)} systems",
        result=[dataclasses.asdict(r) for r in results],
    )
