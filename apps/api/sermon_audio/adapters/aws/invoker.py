"""Signed invocation of AWS API Gateway endpoints."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import json
import logging
import threading
from typing import Any, Literal
from urllib.parse import urlencode, urlsplit

from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
import requests

from sermon_audio.adapters.aws.credentials import CredentialProvider
from sermon_audio.core.config import Settings
from sermon_audio.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

SIGNING_SERVICE = "execute-api"

HttpMethod = Literal["GET", "POST"]
SignerFactory = Callable[[Credentials, str], SigV4Auth]


def default_signer_factory(credentials: Credentials, region: str) -> SigV4Auth:
    return SigV4Auth(credentials, SIGNING_SERVICE, region)


class ApiInvoker:
    """Builds, signs and sends JSON requests to IAM-protected endpoints.

    One signer is kept per region for the lifetime of the invoker. Timeouts
    are read from settings on every call. ``requests`` has no overall
    deadline, so the endpoint timeout bounds each read instead. Nothing is
    retried here; callers decide what a failure means.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        credential_provider: CredentialProvider,
        session: requests.Session | None = None,
        signer_factory: SignerFactory = default_signer_factory,
    ) -> None:
        self._settings = settings
        self._credential_provider = credential_provider
        self._session = session if session is not None else requests.Session()
        self._signer_factory = signer_factory
        self._signers_by_region: dict[str, SigV4Auth] = {}
        self._lock = threading.Lock()

    def invoke(
        self,
        endpoint: str,
        region: str,
        *,
        body: Mapping[str, Any] | None = None,
        query: Mapping[str, str] | None = None,
        method: HttpMethod = "GET",
    ) -> requests.Response:
        if not endpoint:
            raise ValueError("endpoint must not be empty")
        if not region:
            raise ValueError("region must not be empty")

        url = f"{endpoint}?{urlencode(query)}" if query else endpoint
        encoded_body = json.dumps(body) if body is not None else None

        connect_timeout = self._settings.connect_timeout_seconds()
        endpoint_timeout = self._settings.endpoint_timeout_seconds()
        credentials = self._credential_provider.get_credentials()
        if credentials is None:
            raise ConfigurationError("AWS credentials file is not configured.")

        request = AWSRequest(
            method=method,
            url=url,
            data=encoded_body,
            headers={"Content-Type": "application/json", "Accept": "application/json; charset=utf8"},
        )
        self._signer_for(region, credentials).add_auth(request)

        timeout = None
        if connect_timeout is not None or endpoint_timeout is not None:
            timeout = (connect_timeout, endpoint_timeout)

        host = urlsplit(endpoint).netloc
        try:
            response = self._session.request(
                method,
                url,
                data=request.body,
                headers=dict(request.headers.items()),
                timeout=timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "aws.invoke_failed method=%s host=%s region=%s error=%s",
                method,
                host,
                region,
                type(exc).__name__,
            )
            raise TransportError(
                "Failed to send request to remote endpoint.",
                details={"host": host, "method": method},
            ) from exc

        logger.info(
            "aws.invoked method=%s host=%s region=%s status=%s",
            method,
            host,
            region,
            response.status_code,
        )
        return response

    def _signer_for(self, region: str, credentials: Credentials) -> SigV4Auth:
        with self._lock:
            signer = self._signers_by_region.get(region)
            if signer is None:
                signer = self._signer_factory(credentials, region)
                self._signers_by_region[region] = signer
        signer.credentials = credentials
        return signer


def decode_json_object(response: requests.Response) -> dict[str, Any] | None:
    """Return the response body as a JSON object, or None if it is not one."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


__all__ = ["ApiInvoker", "SIGNING_SERVICE", "decode_json_object", "default_signer_factory"]
