"""Worker-facing and internal schemas."""

from pydantic import BaseModel, Field


class JobAnnouncementRequest(BaseModel):
    id: str = Field(min_length=1)


class SweepFailure(BaseModel):
    record_id: str
    code: str


class SweepReportResponse(BaseModel):
    examined: int
    changed: int
    failures: list[SweepFailure]
