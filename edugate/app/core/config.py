import json
import logging
import re
from typing import Annotated, Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()]

    raw = str(raw).strip()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(v).strip() for v in parsed if str(v).strip()]
        raw = raw.strip("[]")

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if "://" not in part:
            # Browsers send the scheme in the Origin header
            for candidate in (f"http://{part}", f"https://{part}"):
                if candidate not in origins:
                    origins.append(candidate)
        elif part not in origins:
            origins.append(part)
    return origins


_LEADING_INT = re.compile(r"[+-]?\d+")


def _parse_positive_int(name: str, raw: Any) -> int | None:
    """Parse an optional numeric override.

    Only the leading integer is read (``"15abc"`` is 15, ``"1.5"`` is 1).
    A bad value must never stop the service from starting: anything
    without a positive leading integer resolves to ``None`` and the limiter
    falls back to its documented default.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return None
    text = str(raw).strip()
    if not text:
        return None
    match = _LEADING_INT.match(text)
    if match is None:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return None
    value = int(match.group(0))
    if value < 1:
        logger.warning(f"Ignoring non-positive value for {name}: {value}")
        return None
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Runtime environment (development relaxes some default ceilings)
    environment: str = Field(
        default="production",
        validation_alias=AliasChoices("NODE_ENV", "APP_ENV", "ENVIRONMENT"),
    )

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Redis settings (empty URL = process-local counting only)
    redis_url: str = ""
    redis_key_prefix: str = "rl:"
    redis_connect_timeout: float = 10.0
    redis_operation_timeout: float = 2.0
    redis_reconnect_interval_seconds: float = 30.0

    # Per-limiter overrides; None means "use the built-in default"
    auth_rate_limit_max: int | None = None
    ai_rate_limit_max: int | None = None
    rate_limit_window_ms: int | None = None
    rate_limit_max_requests: int | None = None

    # Background sweep of idle in-memory buckets
    rate_limit_cleanup_interval_seconds: float = 3600.0

    # Use the first X-Forwarded-For hop as the client address
    trust_proxy: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == "development"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "auth_rate_limit_max",
        "ai_rate_limit_max",
        "rate_limit_window_ms",
        "rate_limit_max_requests",
        mode="before",
    )
    @classmethod
    def decode_limit_override(cls, v: Any, info: ValidationInfo) -> int | None:
        return _parse_positive_int(info.field_name, v)

    @field_validator(
        "redis_connect_timeout",
        "redis_operation_timeout",
        "redis_reconnect_interval_seconds",
        "rate_limit_cleanup_interval_seconds",
        mode="before",
    )
    @classmethod
    def decode_interval(cls, v: Any, info: ValidationInfo) -> Any:
        """Replace malformed or non-positive timeouts with the field default."""
        default = cls.model_fields[info.field_name].default
        try:
            value = float(v)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric value for {info.field_name}: {v!r}")
            return default
        if value <= 0:
            logger.warning(f"Ignoring non-positive value for {info.field_name}: {value}")
            return default
        return value

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()
