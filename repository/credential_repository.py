# repository/credential_repository.py
import json
import logging
import os
from pathlib import Path
from typing import Optional
from config.settings import settings

logger = logging.getLogger(__name__)


class CredentialRepository:
    """
    File-backed storage for the bearer token, the only state that survives a
    restart. Nothing about jobs or polling is written here.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path or settings.CREDENTIAL_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> Optional[str]:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("credential.unreadable path=%s err=%s", self._path, e)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token if isinstance(token, str) and token else None

    def put(self, token: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.unlink(missing_ok=True)
        # Owner-only from the first byte written
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump({"token": token}, fh)
        os.replace(tmp, self._path)

    def delete(self) -> bool:
        try:
            self._path.unlink()
            return True
        except FileNotFoundError:
            return False
