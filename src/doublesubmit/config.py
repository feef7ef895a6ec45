import os
import re
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.doublesubmit.errors import ConfigError

# Load .env for local development (no-op if the file doesn't exist or in prod
# where vars are injected directly into the environment by the platform).
load_dotenv()


def require_env(name: str) -> str:
    """Return the environment variable *name* or raise ConfigError."""
    value = os.getenv(name)
    if value is None:
        raise ConfigError(f"Missing environment variable {name}")
    return value


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


# Runtime environment: "development" | "production"
APP_ENV: str = os.getenv("APP_ENV", "development")

IS_PROD: bool = APP_ENV == "production"

# HMAC key for CSRF tokens; must be at least 32 bytes. Production deployments
# have to provide it (e.g. `python -c "import secrets; print(secrets.token_hex(32))"`).
CSRF_SECRET: str = (
    require_env("CSRF_SECRET")
    if IS_PROD
    else os.getenv("CSRF_SECRET", "dev-only-csrf-secret-change-me-0123456789")
)

CSRF_MAX_AGE: int = int(os.getenv("CSRF_MAX_AGE", "2592000"))  # 30 days

CSRF_CHECKED_METHODS: list[str] = _csv(os.getenv("CSRF_CHECKED_METHODS", "POST,PUT,DELETE"))

# Exact-match paths only; regex exclusions have to be configured in code.
CSRF_EXCLUDED_PATHS: list[str] = _csv(os.getenv("CSRF_EXCLUDED_PATHS", ""))


class CSRFConfig(BaseModel):
    """Immutable settings for one CSRFValidator."""

    model_config = ConfigDict(frozen=True)

    secret: str | bytes = Field(repr=False)
    checked_methods: frozenset[str] = frozenset({"POST", "PUT", "DELETE"})
    # Exact path strings or compiled re.Pattern objects, checked in order.
    excluded_paths: tuple[Any, ...] = ()
    max_age: int = 2592000

    @field_validator("checked_methods")
    @classmethod
    def _methods_upper(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(m.upper() for m in v)

    @field_validator("excluded_paths")
    @classmethod
    def _paths_valid(cls, v: tuple[Any, ...]) -> tuple[Any, ...]:
        for entry in v:
            if not isinstance(entry, (str, re.Pattern)):
                raise ValueError("excluded_paths entries must be strings or compiled patterns")
        return v

    @field_validator("max_age")
    @classmethod
    def _max_age_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_age must not be negative")
        return v


def csrf_config_from_env() -> CSRFConfig:
    return CSRFConfig(
        secret=CSRF_SECRET,
        checked_methods=CSRF_CHECKED_METHODS,
        excluded_paths=CSRF_EXCLUDED_PATHS,
        max_age=CSRF_MAX_AGE,
    )
