"""Processing record routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from sermon_audio.routes.dependencies import get_record_service, require_site_token
from sermon_audio.schemas.error import ErrorResponse
from sermon_audio.schemas.record import (
    RecordView,
    RefreshRecordResponse,
    SubmitJobRequest,
    SubmitJobResponse,
)
from sermon_audio.services.records import RecordService

router = APIRouter(prefix="/records", tags=["Records"], dependencies=[Depends(require_site_token)])


@router.get("/{recordId}", response_model=RecordView, responses={404: {"model": ErrorResponse}})
def get_record(
    recordId: str,
    record_service: Annotated[RecordService, Depends(get_record_service)],
) -> RecordView:
    return record_service.get_record(record_id=recordId)


@router.post(
    "/{recordId}/submit",
    response_model=SubmitJobResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
def submit_record(
    recordId: str,
    payload: SubmitJobRequest,
    record_service: Annotated[RecordService, Depends(get_record_service)],
) -> SubmitJobResponse:
    return record_service.submit(record_id=recordId, payload=payload)


@router.post(
    "/{recordId}/refresh",
    response_model=RefreshRecordResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def refresh_record(
    recordId: str,
    record_service: Annotated[RecordService, Depends(get_record_service)],
    capture_errors: bool = False,
) -> RefreshRecordResponse:
    return record_service.refresh(record_id=recordId, capture_errors=capture_errors)


@router.get(
    "/{recordId}/transcript",
    response_class=HTMLResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def get_record_transcript(
    recordId: str,
    record_service: Annotated[RecordService, Depends(get_record_service)],
    langcode: Annotated[str, Query(min_length=1)] = "en",
) -> HTMLResponse:
    return HTMLResponse(content=record_service.transcript_html(record_id=recordId, langcode=langcode))
