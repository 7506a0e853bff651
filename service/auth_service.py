# service/auth_service.py
import logging
from typing import Optional
from core.session import SessionGate
from model.api import AuthResponse, LoginRequest, RegisterRequest, User
from repository.credential_repository import CredentialRepository
from service.document_api_client import DocumentApiClient
from util.errors import RejectedError, TrackerError, UnauthorizedError

logger = logging.getLogger(__name__)


class AuthService:
    """
    The single writer of the session credential: login/register set it,
    logout and any 401 clear it, restore() brings back a persisted one.
    """

    def __init__(
        self,
        client: DocumentApiClient,
        gate: SessionGate,
        credentials: Optional[CredentialRepository] = None,
    ) -> None:
        self._client = client
        self._gate = gate
        self._credentials = credentials or CredentialRepository()

    async def login(self, email: str, password: str) -> User:
        res = await self._client.login(LoginRequest(email=email, password=password))
        return self._accept(res, "login")

    async def register(
        self, first_name: str, last_name: str, email: str, password: str
    ) -> User:
        res = await self._client.register(
            RegisterRequest(
                firstName=first_name, lastName=last_name, email=email, password=password
            )
        )
        return self._accept(res, "register")

    def _accept(self, res: AuthResponse, what: str) -> User:
        if not res.success or not res.token or res.user is None:
            logger.warning("auth.%s.failed", what)
            raise RejectedError(res.error or res.message or f"{what.capitalize()} failed")
        if not self._gate.authorize(res.token):
            raise UnauthorizedError("Received an expired credential")
        self._credentials.put(res.token)
        logger.info("auth.%s.ok user=%s", what, res.user.id)
        return res.user

    async def logout(self) -> None:
        try:
            await self._client.logout()
        except TrackerError as e:
            logger.warning("auth.logout.server_error kind=%s", e.kind)
        finally:
            self._credentials.delete()
            self._gate.deauthorize("logout")

    async def me(self) -> User:
        try:
            return await self._client.me()
        except UnauthorizedError:
            self._credentials.delete()
            self._gate.deauthorize("unauthorized")
            raise

    async def restore(self) -> Optional[User]:
        """Revalidate a persisted credential; discard it unless the server accepts it."""
        token = self._credentials.get()
        if not token:
            return None
        if not self._gate.authorize(token):
            self._credentials.delete()
            return None
        try:
            user = await self.me()
        except UnauthorizedError:
            return None
        except TrackerError as e:
            logger.warning("auth.restore.failed kind=%s", e.kind)
            self._credentials.delete()
            self._gate.deauthorize("invalid")
            return None
        logger.info("auth.restored user=%s", user.id)
        return user
