# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")

    # Backend
    API_BASE_URL: str = Field(
        default="http://localhost:8080", validation_alias="API_BASE_URL"
    )
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0, validation_alias="HTTP_TIMEOUT_SECONDS"
    )
    UPLOAD_TIMEOUT_SECONDS: float = Field(
        default=120.0, validation_alias="UPLOAD_TIMEOUT_SECONDS"
    )

    # Polling periods (seconds)
    STATUS_POLL_ACTIVE_SECONDS: float = Field(
        default=2.0, gt=0, validation_alias="STATUS_POLL_ACTIVE_SECONDS"
    )
    STATUS_POLL_IDLE_SECONDS: float = Field(
        default=5.0, gt=0, validation_alias="STATUS_POLL_IDLE_SECONDS"
    )
    PROGRESS_POLL_SECONDS: float = Field(
        default=2.0, gt=0, validation_alias="PROGRESS_POLL_SECONDS"
    )
    QUEUE_POLL_SECONDS: float = Field(
        default=10.0, gt=0, validation_alias="QUEUE_POLL_SECONDS"
    )

    # Session credential
    CREDENTIAL_FILE: str = Field(
        default=os.path.join(os.path.expanduser("~"), ".docformat", "credentials.json"),
        validation_alias="CREDENTIAL_FILE",
    )

    # Logging knobs
    LOGGER_NAME: str = "docformat-tracker"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="tracker.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=10 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
