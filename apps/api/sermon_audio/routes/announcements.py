"""Job completion announcements posted by the workers."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status

from sermon_audio.routes.dependencies import get_refresh_sweep, require_site_token
from sermon_audio.schemas.error import ErrorResponse
from sermon_audio.schemas.internal import JobAnnouncementRequest
from sermon_audio.schemas.job import JobKind
from sermon_audio.services.sweep import RefreshSweep

router = APIRouter(prefix="/announcements", tags=["Announcements"])

_RESPONSES = {
    200: {"description": "Announcement accepted"},
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
}


@router.post("/cleaning", status_code=status.HTTP_200_OK, responses=_RESPONSES)
async def announce_cleaning_job(
    payload: JobAnnouncementRequest,
    background_tasks: BackgroundTasks,
    _: Annotated[None, Depends(require_site_token)],
    sweep: Annotated[RefreshSweep, Depends(get_refresh_sweep)],
) -> Response:
    background_tasks.add_task(sweep.refresh_announced_job, JobKind.CLEANING, payload.id)
    return Response(status_code=status.HTTP_200_OK)


@router.post("/transcription", status_code=status.HTTP_200_OK, responses=_RESPONSES)
async def announce_transcription_job(
    payload: JobAnnouncementRequest,
    background_tasks: BackgroundTasks,
    _: Annotated[None, Depends(require_site_token)],
    sweep: Annotated[RefreshSweep, Depends(get_refresh_sweep)],
) -> Response:
    background_tasks.add_task(sweep.refresh_announced_job, JobKind.TRANSCRIPTION, payload.id)
    return Response(status_code=status.HTTP_200_OK)
