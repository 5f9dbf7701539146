"""Internal maintenance routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from sermon_audio.routes.dependencies import get_refresh_sweep, require_site_token
from sermon_audio.schemas.error import ErrorResponse
from sermon_audio.schemas.internal import SweepFailure, SweepReportResponse
from sermon_audio.services.sweep import RefreshSweep

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/sweep", response_model=SweepReportResponse, responses={401: {"model": ErrorResponse}})
def run_sweep(
    _: Annotated[None, Depends(require_site_token)],
    sweep: Annotated[RefreshSweep, Depends(get_refresh_sweep)],
) -> SweepReportResponse:
    report = sweep.run()
    return SweepReportResponse(
        examined=report.examined,
        changed=report.changed,
        failures=[SweepFailure(record_id=record_id, code=code) for record_id, code in report.failures],
    )
