# patrefresh/core/config.py
import os
import re
from typing import Optional, Type, TypeVar

from pydantic import SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_SECRET_NAME = "GH_PAT"

# The app JWT lives 540 seconds, a single HTTP call must not outlive it
MAX_HTTP_TIMEOUT = 540

NUMERIC_ID_REGEX = re.compile(r"^[0-9]+$")
REPOSITORY_REGEX = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
SECRET_NAME_REGEX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class AppSettings(BaseSettings):
    """
    Credentials of the GitHub App and HTTP options.
    Read from the environment (or a .env file); field names are the variable names.
    """
    APP_ID: str
    PRIVATE_KEY: SecretStr
    GITHUB_API_URL: str = DEFAULT_API_URL
    HTTP_TIMEOUT: float = 30.0

    # CA bundle for TLS verification (None = system default)
    CA_CERT: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("APP_ID", mode="before")
    @classmethod
    def validate_app_id(cls, value):
        return _numeric_id(value)

    @field_validator("PRIVATE_KEY", mode="before")
    @classmethod
    def normalize_private_key(cls, value):
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        # Secrets stored on a single line carry escaped newlines
        pem = str(value).replace("\\n", "\n").strip()
        if "-----BEGIN" not in pem:
            raise ValueError("must be a PEM-encoded private key")
        return pem

    @field_validator("GITHUB_API_URL")
    @classmethod
    def validate_api_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith("https://"):
            raise ValueError("must be an https:// URL")
        return value

    @field_validator("HTTP_TIMEOUT")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if not 0 < value < MAX_HTTP_TIMEOUT:
            raise ValueError(f"must be between 0 and {MAX_HTTP_TIMEOUT} seconds")
        return value


class RefreshSettings(AppSettings):
    """Everything the refresh pipeline needs: app credentials plus the target secret."""
    INSTALLATION_ID: str
    GITHUB_REPOSITORY: str
    SECRET_NAME: str = DEFAULT_SECRET_NAME

    @field_validator("INSTALLATION_ID", mode="before")
    @classmethod
    def validate_installation_id(cls, value):
        return _numeric_id(value)

    @field_validator("GITHUB_REPOSITORY")
    @classmethod
    def validate_repository(cls, value: str) -> str:
        value = value.strip()
        if not REPOSITORY_REGEX.match(value):
            raise ValueError("must look like owner/repo")
        return value

    @field_validator("SECRET_NAME")
    @classmethod
    def validate_secret_name(cls, value: str) -> str:
        value = value.strip()
        if not SECRET_NAME_REGEX.match(value):
            raise ValueError("may only contain letters, digits and '_' and must not start with a digit")
        if value.upper().startswith("GITHUB_"):
            raise ValueError("must not start with GITHUB_")
        return value


def _numeric_id(value) -> str:
    value = str(value).strip()
    if not NUMERIC_ID_REGEX.match(value):
        raise ValueError("must be a numeric id")
    return value


SettingsT = TypeVar("SettingsT", bound=AppSettings)


def load_settings(settings_cls: Type[SettingsT], **overrides) -> SettingsT:
    """
    Builds the settings from the environment. Non-None overrides (CLI options)
    take priority over environment variables.
    Raises ConfigurationError naming the offending fields, never their values.
    """
    overrides = {name: value for name, value in overrides.items() if value is not None}
    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        # Suppress the chained ValidationError, its text includes the inputs
        raise ConfigurationError(
            f"Missing or invalid configuration: {describe_validation_error(e)}"
        ) from None


def describe_validation_error(error: ValidationError) -> str:
    problems = []
    for err in error.errors(include_url=False, include_input=False):
        field = ".".join(str(part) for part in err["loc"]) or "settings"
        problems.append(f"{field} ({err['msg']})")
    return "; ".join(problems)


def get_verify(settings: AppSettings):
    """Use the configured CA bundle if it exists, else True (system certs)."""
    if settings.CA_CERT and os.path.exists(settings.CA_CERT):
        return settings.CA_CERT
    return True
