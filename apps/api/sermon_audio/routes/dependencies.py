"""Dependency wiring for routes."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
import logging
from secrets import compare_digest
from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sermon_audio.core.logging_safety import safe_log_identifier
from sermon_audio.core.site_token import SiteTokenProvider
from sermon_audio.errors import AuthenticationError, BadRequestError
from sermon_audio.repositories.memory import InMemoryStore
from sermon_audio.services.records import RecordService
from sermon_audio.services.sweep import RefreshSweep

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    store: InMemoryStore
    records: RecordService
    sweep: RefreshSweep
    site_token: SiteTokenProvider


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_record_service(services: Annotated[ServiceContainer, Depends(get_services)]) -> RecordService:
    return services.records


def get_refresh_sweep(services: Annotated[ServiceContainer, Depends(get_services)]) -> RefreshSweep:
    return services.sweep


def _decode_token(raw: str) -> str:
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise BadRequestError("Authorization header is malformed") from exc


async def require_site_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> None:
    """Validate the base64-encoded site token presented as a bearer credential."""
    safe_path = safe_log_identifier(request.url.path, prefix="path")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected method=%s path=%s reason=invalid_or_missing_bearer",
            request.method,
            safe_path,
        )
        raise AuthenticationError("Invalid or missing bearer token")

    presented = _decode_token(credentials.credentials)
    expected = services.site_token.get_token()
    if not compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(
            "auth.rejected method=%s path=%s reason=token_mismatch",
            request.method,
            safe_path,
        )
        raise AuthenticationError("Invalid bearer token")
