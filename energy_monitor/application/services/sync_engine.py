"""
Sync Session Engine.

Runs an ordered list of stages as one audited session and yields events as
it goes. The session row is created before any stage work and finalized
exactly once on every exit path.
"""
import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from ...domain.entities.session import SessionCause, SessionHandle
from ...domain.entities.sync import (
    StageResult,
    StageState,
    StageStatus,
    SyncRequest,
    SyncResult,
    SyncSummary,
)
from ...domain.entities.sync_event import (
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
    StagesEvent,
    SyncEvent,
)
from ...domain.entities.system import System
from .session_service import SessionService

logger = logging.getLogger(__name__)

CANCELLED_DETAIL = "Cancelled"
INTERRUPTED_DETAIL = "Interrupted"
CANCELLED_MESSAGE = "Sync was cancelled by user"


class SyncCancelled(Exception):
    """Raised inside the engine when the cancel event is set."""


@dataclass
class SyncContext:
    """
    Shared state handed to every stage.

    results holds the StageResult of each finished stage by stage id; state
    is scratch space for data passed between stages (e.g. readings batches)
    that does not belong in the audit payload.
    """
    request: SyncRequest
    system: System
    session: SessionHandle
    cancel_event: asyncio.Event
    results: Dict[str, StageResult] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.request.dry_run

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class SyncStage:
    """
    One named step of a sync.

    estimated_ms weights the stage's share of the progress bar. group ties
    stages together for early exit: a halting stage skips the remaining
    stages of its own group only (all remaining stages when group is None).
    """
    id: str
    name: str
    execute: Callable[[SyncContext], Awaitable[StageResult]]
    estimated_ms: int = 1000
    group: Optional[str] = None


def _without_samples(result: StageResult) -> StageResult:
    if result.info is None or not result.info.sample_records:
        return result
    return dataclasses.replace(result, info=dataclasses.replace(result.info, sample_records={}))


def _reported_rows(summary: SyncSummary, dry_run: bool) -> int:
    """Rows written, or for a dry run the rows that would have been."""
    return summary.num_rows_would_insert if dry_run else summary.num_rows_inserted


def progress_allocations(stages: Sequence[SyncStage]) -> Dict[str, tuple]:
    """Split 0-100 between stages in proportion to estimated_ms."""
    total = sum(max(stage.estimated_ms, 0) for stage in stages)
    allocations: Dict[str, tuple] = {}
    cumulative = 0.0
    for stage in stages:
        if total:
            share = max(stage.estimated_ms, 0) / total * 100
        else:
            share = 100 / len(stages)
        allocations[stage.id] = (cumulative, cumulative + share)
        cumulative += share
    return allocations


class SyncEngine:
    """
    Drives stages, streams events and guarantees session finalization.

    Usage:
        async for event in engine.run(request, stages, system, cause):
            ...
    """

    def __init__(self, session_service: SessionService):
        self._session_service = session_service

    async def run(
        self,
        request: SyncRequest,
        stages: Sequence[SyncStage],
        system: System,
        cause: SessionCause,
        cancel_event: Optional[asyncio.Event] = None,
        label: Optional[str] = None,
    ) -> AsyncIterator[SyncEvent]:
        """
        Run the stages in order, yielding SyncEvents.

        A stage-level error does not stop the engine; a halting result skips
        the rest of its group. Setting cancel_event stops work at the next
        check and cancels the in-flight stage. Any other exception marks the
        current stage as failed and ends the run with an ErrorEvent.
        """
        cancel_event = cancel_event or asyncio.Event()

        # Created before any stage runs; failure here propagates
        handle = await self._session_service.create_session(
            system.id,
            cause,
            label=label,
            vendor_type=system.vendor_type,
            system_name=system.display_name,
        )

        ctx = SyncContext(request=request, system=system, session=handle, cancel_event=cancel_event)
        states = [StageState(id=stage.id, name=stage.name) for stage in stages]
        by_id = {state.id: state for state in states}
        allocations = progress_allocations(stages) if stages else {}
        executed: List[StageResult] = []

        started = time.monotonic()
        last_progress = 0
        error: Optional[str] = None
        exception: Optional[str] = None
        cancelled = False
        successful = False

        def snapshot() -> StagesEvent:
            return StagesEvent(stages=[dataclasses.replace(state) for state in states])

        def progress(stage_id: str, fraction: float, message: str) -> ProgressEvent:
            nonlocal last_progress
            start, end = allocations[stage_id]
            value = max(last_progress, round(start + fraction * (end - start)))
            last_progress = value
            return ProgressEvent(message=message, progress=value)

        current: Optional[StageState] = None

        try:
            yield snapshot()

            skipped_groups = set()
            halt_all = False

            for stage in stages:
                if cancel_event.is_set():
                    raise SyncCancelled()

                state = by_id[stage.id]

                if halt_all or (stage.group is not None and stage.group in skipped_groups):
                    state.status = StageStatus.SKIPPED
                    state.detail = "Skipped"
                    state.progress = 1.0
                    yield snapshot()
                    yield progress(stage.id, 1.0, f"{stage.name}: skipped")
                    continue

                current = state
                state.status = StageStatus.RUNNING
                state.progress = 0.0
                state.start_time_ms = int(time.time() * 1000)
                stage_started = time.monotonic()
                logger.info(f"Session {handle.id}: stage '{stage.name}' started")
                yield snapshot()
                yield progress(stage.id, 0.0, f"{stage.name}: 0%")

                result = await self._execute(stage, ctx)

                ctx.results[stage.id] = result
                executed.append(result)
                state.duration_ms = int((time.monotonic() - stage_started) * 1000)
                state.progress = 1.0
                state.result = result if request.show_sample else _without_samples(result)

                if result.error:
                    state.status = StageStatus.ERROR
                    state.detail = result.error
                    if error is None:
                        error = f"{stage.name} failed: {result.error}"
                    logger.warning(f"Session {handle.id}: stage '{stage.name}' failed: {result.error}")
                else:
                    state.status = StageStatus.COMPLETED
                    state.detail = result.discovery
                    logger.info(
                        f"Session {handle.id}: stage '{stage.name}' completed in {state.duration_ms}ms"
                    )
                current = None

                if result.halt:
                    if stage.group is None:
                        halt_all = True
                    else:
                        skipped_groups.add(stage.group)

                yield snapshot()
                yield progress(stage.id, 1.0, state.detail or f"{stage.name}: 100%")

            successful = error is None
            summary = self._summary(executed, started, error, exception)
            rows = _reported_rows(summary, request.dry_run)
            verb = "would write" if request.dry_run else "inserted"
            last_progress = 100
            yield ProgressEvent(message=f"Sync finished: {verb} {rows} rows", progress=100)
            yield CompleteEvent(
                session_id=handle.id,
                summary=dataclasses.asdict(summary),
            )

        except SyncCancelled:
            cancelled = True
            error = CANCELLED_MESSAGE
            if current is not None:
                current.status = StageStatus.ERROR
                current.detail = CANCELLED_DETAIL
            logger.info(f"Session {handle.id}: cancelled")
            yield snapshot()
            yield ErrorEvent(message=CANCELLED_MESSAGE, session_id=handle.id)

        except asyncio.CancelledError:
            # The consuming task was cancelled; nothing more can be yielded
            cancelled = True
            error = CANCELLED_MESSAGE
            if current is not None:
                current.status = StageStatus.ERROR
                current.detail = INTERRUPTED_DETAIL
            logger.info(f"Session {handle.id}: interrupted")
            raise

        except GeneratorExit:
            # Listener closed the stream early
            if not successful:
                cancelled = True
                error = error or CANCELLED_MESSAGE
                if current is not None:
                    current.status = StageStatus.ERROR
                    current.detail = INTERRUPTED_DETAIL
            raise

        except Exception as e:
            error = str(e) or "Sync failed"
            exception = type(e).__name__
            if current is not None:
                current.status = StageStatus.ERROR
                current.detail = error
            logger.error(f"Session {handle.id}: sync failed: {e}")
            yield snapshot()
            yield ErrorEvent(message=error, session_id=handle.id)

        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            summary = self._summary(executed, started, error, exception)
            audit = SyncResult(
                action=request.action.value,
                success=successful and not cancelled,
                system_id=system.id,
                first_day=request.start_date,
                number_of_days=request.days,
                stages=executed,
                summary=summary,
                dry_run=request.dry_run,
            )
            await self._session_service.finalize_session(
                handle.id,
                duration_ms=duration_ms,
                successful=audit.success,
                error_code="CANCELLED" if cancelled else None,
                error=error,
                response=audit,
                num_rows=_reported_rows(summary, request.dry_run),
            )

    async def _execute(self, stage: SyncStage, ctx: SyncContext) -> StageResult:
        """
        Run one stage, cancelling it if the cancel event fires first.

        Raises:
            SyncCancelled: The cancel event was set while the stage ran.
        """
        task = asyncio.ensure_future(stage.execute(ctx))
        waiter = asyncio.ensure_future(ctx.cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if task in done:
                return task.result()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            raise SyncCancelled()
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

    @staticmethod
    def _summary(
        executed: Sequence[StageResult],
        started: float,
        error: Optional[str],
        exception: Optional[str],
    ) -> SyncSummary:
        return SyncSummary(
            total_stages=len(executed),
            num_rows_inserted=sum(result.num_rows_inserted for result in executed),
            num_rows_would_insert=sum(result.num_rows_would_insert for result in executed),
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
            exception=exception,
        )
