"""AI-assisted scheduling endpoint."""
from __future__ import annotations

import logging
from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status

from aide.api.schemas.schedule import RejectedEntryPayload, ScheduleRequest, ScheduleResponse
from aide.core.config import Settings, get_settings
from aide.observability.metrics import log_metric
from aide.observability.tracing import trace
from aide.scheduling.constraints import ConstraintError
from aide.services.ai_schedule import plan_schedule
from aide.services.schedule_generator import ScheduleGenerationError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/ai/schedule", response_model=ScheduleResponse, tags=["ai"])
def ai_schedule(
    request: Request,
    payload: ScheduleRequest,
    settings: Settings = Depends(get_settings),
) -> ScheduleResponse:
    request_id = getattr(request.state, "request_id", None)
    start = perf_counter()

    with trace("ai_schedule.request", metadata={"tasks": len(payload.tasks)}, request_id=request_id):
        try:
            outcome = plan_schedule(payload, settings)
        except ConstraintError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        except ScheduleGenerationError as exc:
            logger.warning("Schedule generation failed: %s", exc)
            raise HTTPException(status_code=exc.status_code, detail=exc.public_message)

    result = outcome.result
    latency_ms = (perf_counter() - start) * 1000
    log_metric("ai_schedule.accepted", len(result.accepted), metadata={"source": outcome.source})
    log_metric("ai_schedule.rejected", result.rejected_count, metadata={"source": outcome.source})
    log_metric("ai_schedule.latency_ms", latency_ms)

    return ScheduleResponse(
        schedule=result.accepted,
        rejected=[
            RejectedEntryPayload(index=item.index, reason=item.reason, detail=item.detail, entry=item.entry)
            for item in result.rejected
        ],
        rejected_count=result.rejected_count,
        suggestions=outcome.suggestions,
        warnings=outcome.warnings,
        constraints=outcome.constraints.as_config(),
        request_id=request_id or "",
    )
