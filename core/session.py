# core/session.py
import logging
import time
from typing import Callable, Dict, List, Optional
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

SessionListener = Callable[[bool, str], None]


class SessionContext:
    """
    Holder for the bearer credential. Every poller reads it; only the
    login/logout flow (AuthService, SessionGate) writes it.
    """

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token or None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    def clear(self) -> None:
        self._token = None

    def expires_at(self) -> Optional[float]:
        """`exp` of a JWT credential; opaque tokens have none."""
        if not self._token:
            return None
        try:
            claims = jwt.get_unverified_claims(self._token)
        except JWTError:
            return None
        exp = claims.get("exp")
        return float(exp) if isinstance(exp, (int, float)) else None

    def is_expired(self, now: Optional[float] = None) -> bool:
        exp = self.expires_at()
        if exp is None:
            return False
        return exp <= (now if now is not None else time.time())

    @property
    def is_valid(self) -> bool:
        return bool(self._token) and not self.is_expired()

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}


class SessionGate:
    """
    Derives the "authorized" signal from the SessionContext and tells
    listeners about every transition. Listeners run synchronously, so by the
    time deauthorize() returns every poller has been torn down.
    """

    def __init__(self, session: SessionContext) -> None:
        self._session = session
        self._authorized = session.is_valid
        self._listeners: List[SessionListener] = []

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def authorized(self) -> bool:
        return self._authorized

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def authorize(self, token: str) -> bool:
        self._session.set_token(token)
        if not self._session.is_valid:
            logger.warning("session.rejected reason=expired")
            return self.deauthorize("expired")
        if self._authorized:
            return True
        self._authorized = True
        logger.info("session.authorized")
        self._notify(True, "login")
        return True

    def deauthorize(self, reason: str = "logout") -> bool:
        self._session.clear()
        if not self._authorized:
            return False
        self._authorized = False
        logger.info("session.deauthorized reason=%s", reason)
        self._notify(False, reason)
        return False

    def check(self) -> bool:
        """Re-derive the signal, e.g. right before a tick, to catch expiry."""
        if self._authorized and not self._session.is_valid:
            reason = "expired" if self._session.token else "missing"
            return self.deauthorize(reason)
        return self._authorized

    def _notify(self, authorized: bool, reason: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(authorized, reason)
            except Exception:
                logger.exception("session.listener_failed authorized=%s", authorized)
