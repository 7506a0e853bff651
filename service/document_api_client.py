# service/document_api_client.py
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
import httpx
from fastapi import status
from pydantic import BaseModel, ValidationError
from config.settings import settings
from core.session import SessionContext
from model.api import AuthResponse, LoginRequest, RegisterRequest, UploadResponse, User
from model.job import Job, ProgressSnapshot, QueueSnapshot
from util.constants import ExternalURIs
from util.errors import (
    MalformedResponseError,
    NotFoundError,
    RejectedError,
    TransientError,
    UnauthorizedError,
)
from util.timing import timed

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _error_text(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        return res.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""


def raise_for_status(res: httpx.Response, *, what: str) -> None:
    """Map an HTTP outcome onto the tracker error taxonomy."""
    code = res.status_code
    if code // 100 == 2:
        return
    detail = _error_text(res)
    if code == status.HTTP_401_UNAUTHORIZED:
        logger.warning("api.unauthorized what=%s", what)
        raise UnauthorizedError(detail or "Session expired", code)
    if code in (status.HTTP_404_NOT_FOUND, status.HTTP_403_FORBIDDEN):
        raise NotFoundError(detail or f"{what} not found", code)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("api.server_error what=%s status=%d", what, code)
        raise TransientError(detail or "Server error", code)
    logger.warning("api.rejected what=%s status=%d", what, code)
    raise RejectedError(detail or f"Request rejected ({code})", code)


class DocumentApiClient:
    """
    Thin async client for the formatting backend. The only place that knows
    about HTTP; everything above it sees models or TrackerError subclasses.
    """

    def __init__(
        self,
        session: SessionContext,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._session = session
        self._base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._timeout = httpx.Timeout(
            timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            connect=5.0,
        )
        self._transport = transport

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or self._timeout,
            transport=self._transport,
        )

    def _auth_headers(self) -> Dict[str, str]:
        headers = self._session.auth_headers()
        if not headers:
            raise UnauthorizedError("No session credential")
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        what: str,
        auth: bool = True,
        timeout: Optional[httpx.Timeout] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._auth_headers() if auth else kwargs.pop("headers", {})
        try:
            with timed(logger, f"api.{what}", level=logging.DEBUG, path=path):
                async with self._client(timeout) as client:
                    res = await client.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.warning("api.request_error what=%s err=%s", what, type(e).__name__)
            raise TransientError(f"Request failed: {type(e).__name__}")
        raise_for_status(res, what=what)
        return res

    @staticmethod
    def _parse(res: httpx.Response, model: Type[M], *, what: str) -> M:
        try:
            return model.model_validate(res.json())
        except (ValueError, ValidationError) as e:
            logger.error("api.malformed what=%s err=%s", what, e)
            raise MalformedResponseError(f"Unexpected {what} response")

    # ---------------- Documents ----------------

    async def format_document(self, path: Path) -> UploadResponse:
        timeout = httpx.Timeout(settings.UPLOAD_TIMEOUT_SECONDS, connect=5.0)
        with path.open("rb") as fh:
            res = await self._send(
                "POST",
                ExternalURIs.FORMAT_DOCUMENT,
                what="upload",
                timeout=timeout,
                files={"file": (path.name, fh, "application/octet-stream")},
            )
        return self._parse(res, UploadResponse, what="upload")

    async def get_status(self, job_id: str) -> Job:
        res = await self._send(
            "GET", ExternalURIs.document_status(job_id), what="status"
        )
        return self._parse(res, Job, what="status")

    async def get_progress(self, job_id: str) -> ProgressSnapshot:
        res = await self._send(
            "GET", ExternalURIs.document_progress(job_id), what="progress"
        )
        return self._parse(res, ProgressSnapshot, what="progress")

    async def get_queue(self) -> QueueSnapshot:
        res = await self._send("GET", ExternalURIs.QUEUE_STATUS, what="queue")
        return self._parse(res, QueueSnapshot, what="queue")

    async def download(self, job_id: str) -> bytes:
        res = await self._send("GET", ExternalURIs.download(job_id), what="download")
        return res.content

    # ---------------- Auth ----------------

    async def login(self, payload: LoginRequest) -> AuthResponse:
        return await self._auth_call(ExternalURIs.AUTH_LOGIN, payload, what="login")

    async def register(self, payload: RegisterRequest) -> AuthResponse:
        return await self._auth_call(
            ExternalURIs.AUTH_REGISTER, payload, what="register"
        )

    async def _auth_call(
        self, path: str, payload: BaseModel, *, what: str
    ) -> AuthResponse:
        try:
            res = await self._send(
                "POST", path, what=what, auth=False, json=payload.model_dump()
            )
        except (UnauthorizedError, RejectedError) as e:
            return AuthResponse(success=False, error=e.message)
        return self._parse(res, AuthResponse, what=what)

    async def logout(self) -> None:
        # The credential is sent when present but not required
        await self._send(
            "POST",
            ExternalURIs.AUTH_LOGOUT,
            what="logout",
            auth=False,
            headers=self._session.auth_headers(),
        )

    async def me(self) -> User:
        res = await self._send("GET", ExternalURIs.AUTH_ME, what="me")
        return self._parse(res, User, what="me")
