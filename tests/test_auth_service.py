import json
import os
import stat

import pytest

from repository.credential_repository import CredentialRepository
from service.auth_service import AuthService
from util.errors import RejectedError, UnauthorizedError

USER = {"id": 7, "email": "a@b.c", "firstName": "Ann", "points": 3}


@pytest.fixture()
def credentials(tmp_path) -> CredentialRepository:
    return CredentialRepository(str(tmp_path / "auth" / "credentials.json"))


@pytest.fixture()
def auth(client, gate, credentials) -> AuthService:
    return AuthService(client, gate, credentials)


def test_credential_repository_round_trip(credentials):
    assert credentials.get() is None
    credentials.put("tok")
    assert credentials.get() == "tok"
    assert json.loads(credentials.path.read_text()) == {"token": "tok"}
    assert credentials.delete()
    assert not credentials.delete()
    assert credentials.get() is None


def test_credential_repository_ignores_garbage(credentials):
    credentials.path.parent.mkdir(parents=True)
    credentials.path.write_text("{not json")
    assert credentials.get() is None


@pytest.mark.asyncio
async def test_login_persists_token(backend, auth, gate, credentials):
    gate.deauthorize("logout")
    backend.script("/auth/login", (200, {"success": True, "token": "fresh", "user": USER}))

    user = await auth.login("a@b.c", "pw")

    assert user.firstName == "Ann"
    assert gate.authorized
    assert gate.session.token == "fresh"
    assert credentials.get() == "fresh"
    # Login is sent without the stale credential
    assert backend.requests[-1][2] is None


@pytest.mark.asyncio
async def test_login_failure_keeps_session_closed(backend, auth, gate, credentials):
    gate.deauthorize("logout")
    backend.script("/auth/login", (401, {"error": "Неверный email или пароль"}))

    with pytest.raises(RejectedError, match="Неверный"):
        await auth.login("a@b.c", "bad")
    assert not gate.authorized
    assert credentials.get() is None


@pytest.mark.asyncio
async def test_register(backend, auth, gate):
    backend.script("/auth/register", (200, {"success": True, "token": "t2", "user": USER}))
    user = await auth.register("Ann", "Lee", "a@b.c", "pw")
    assert user.id == 7
    assert gate.session.token == "t2"


@pytest.mark.asyncio
async def test_logout_clears_even_when_server_fails(backend, auth, gate, credentials):
    credentials.put("test-token")
    backend.script("/auth/logout", (500, {"error": "down"}))

    await auth.logout()

    assert not gate.authorized
    assert credentials.get() is None
    assert backend.requests[-1][2] == "Bearer test-token"


@pytest.mark.asyncio
async def test_me_401_drops_session(backend, auth, gate, credentials):
    credentials.put("test-token")
    backend.script("/auth/me", (401, {"error": "expired"}))

    with pytest.raises(UnauthorizedError):
        await auth.me()
    assert not gate.authorized
    assert credentials.get() is None


@pytest.mark.asyncio
async def test_restore_valid_credential(backend, auth, gate, credentials):
    gate.deauthorize("logout")
    credentials.put("saved")
    backend.script("/auth/me", (200, USER))

    user = await auth.restore()

    assert user is not None and user.email == "a@b.c"
    assert gate.authorized
    assert backend.requests[-1][2] == "Bearer saved"


@pytest.mark.asyncio
async def test_restore_rejected_credential(backend, auth, gate, credentials):
    gate.deauthorize("logout")
    credentials.put("saved")
    backend.script("/auth/me", (401, {"error": "expired"}))

    assert await auth.restore() is None
    assert not gate.authorized
    assert credentials.get() is None


@pytest.mark.asyncio
async def test_restore_without_credential(auth, backend):
    assert await auth.restore() is None
    assert backend.requests == []


@pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
def test_credential_file_is_owner_only(credentials):
    credentials.put("tok")
    assert stat.S_IMODE(credentials.path.stat().st_mode) == 0o600
    assert not credentials.path.with_suffix(".json.tmp").exists()
