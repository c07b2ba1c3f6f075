import pytest

from edugate.app.core.config import Settings


def test_defaults(settings: Settings) -> None:
    assert settings.environment == "production"
    assert settings.is_development is False
    assert settings.redis_url == ""
    assert settings.redis_key_prefix == "rl:"
    assert settings.auth_rate_limit_max is None
    assert settings.rate_limit_cleanup_interval_seconds == 3600.0
    assert settings.redis_reconnect_interval_seconds == 30.0


@pytest.mark.parametrize("variable", ["NODE_ENV", "APP_ENV", "ENVIRONMENT"])
def test_environment_aliases(monkeypatch, variable: str) -> None:
    monkeypatch.setenv(variable, "Development")

    assert Settings(_env_file=None).is_development is True


def test_numeric_overrides(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX", " 25 ")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_MS", "60000")

    settings = Settings(_env_file=None)
    assert settings.auth_rate_limit_max == 25
    assert settings.rate_limit_window_ms == 60000


@pytest.mark.parametrize("raw", ["abc", "0", "-3", "", "x15"])
def test_malformed_limit_overrides_fall_back(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("AI_RATE_LIMIT_MAX", raw)

    assert Settings(_env_file=None).ai_rate_limit_max is None


@pytest.mark.parametrize(("raw", "expected"), [("15abc", 15), ("1.5", 1), ("+8", 8)])
def test_limit_overrides_read_leading_integer(monkeypatch, raw: str, expected: int) -> None:
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX", raw)

    assert Settings(_env_file=None).auth_rate_limit_max == expected


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_malformed_intervals_use_default(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", raw)
    monkeypatch.setenv("REDIS_OPERATION_TIMEOUT", raw)

    settings = Settings(_env_file=None)
    assert settings.rate_limit_cleanup_interval_seconds == 3600.0
    assert settings.redis_operation_timeout == 2.0


def test_cors_origins_accepts_host_without_json(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "43.163.94.63")

    settings = Settings(_env_file=None)
    assert "http://43.163.94.63" in settings.cors_origins


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["http://localhost:5173"]', ["http://localhost:5173"]),
        ("*", ["*"]),
        ("[]", []),
        ("", []),
    ],
)
def test_cors_origins_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("CORS_ORIGINS", raw)

    settings = Settings(_env_file=None)
    assert settings.cors_origins == expected
