import pytest
from pydantic import ValidationError

from app.config import Settings

ENV_NAMES = (
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_OUTLINE_MODEL",
    "OPENAI_TIMEOUT_SECONDS",
    "OPENAI_MAX_RETRIES",
    "DATABASE_URL",
    "APP_ENV",
    "LOG_LEVEL",
    "HOST",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_without_environment(clean_env):
    settings = Settings()

    assert settings.openai_api_key is None
    assert settings.grading_model == "gpt-3.5-turbo-0125"
    assert settings.outline_model == "gpt-3.5-turbo"
    assert settings.openai_timeout_seconds == 60
    assert settings.openai_max_retries == 2
    assert settings.database_url is None
    assert settings.is_development is False
    assert settings.log_level == "INFO"


def test_reads_environment_variables(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    clean_env.setenv("OPENAI_TIMEOUT_SECONDS", "15")
    clean_env.setenv("OPENAI_MAX_RETRIES", "0")
    clean_env.setenv("DATABASE_URL", "sqlite://")
    clean_env.setenv("APP_ENV", "Dev")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.openai_api_key == "sk-test"
    assert settings.openai_timeout_seconds == 15
    assert settings.openai_max_retries == 0
    assert settings.database_url == "sqlite://"
    assert settings.is_development is True
    assert settings.log_level == "DEBUG"


def test_empty_values_fall_back_to_defaults(clean_env):
    clean_env.setenv("OPENAI_TIMEOUT_SECONDS", "")
    clean_env.setenv("DATABASE_URL", "")

    settings = Settings()

    assert settings.openai_timeout_seconds == 60
    assert settings.database_url is None


@pytest.mark.parametrize(
    "name, value",
    [
        ("OPENAI_TIMEOUT_SECONDS", "2.5"),
        ("OPENAI_TIMEOUT_SECONDS", "0"),
        ("OPENAI_MAX_RETRIES", "zero"),
        ("OPENAI_MAX_RETRIES", "-1"),
    ],
)
def test_bad_numeric_values_fail_validation(clean_env, name, value):
    clean_env.setenv(name, value)

    with pytest.raises(ValidationError) as excinfo:
        Settings()

    assert name.lower() in str(excinfo.value).lower()


def test_fields_can_be_set_by_name(clean_env):
    settings = Settings(openai_api_key=None, database_url="sqlite://", app_env="local")

    assert settings.database_url == "sqlite://"
    assert settings.is_development is True
