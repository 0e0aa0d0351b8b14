"""Settings resolution: action inputs (INPUT_* env vars) over an optional pmu.toml."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

import tomlkit
from pydantic import SecretStr, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)
from tomlkit.exceptions import TOMLKitError

from pmu.errors import ConfigurationError

CONFIG_PATH = Path("pmu.toml")

# Fields each tracker needs before it can make a single request
REQUIRED_TRACKER_FIELDS: dict[str, tuple[str, ...]] = {
    "jira": ("jira_base_url", "jira_email", "jira_api_token", "jira_project_key"),
    "linear": ("linear_api_key",),
}


class PmuSettings(BaseSettings):
    model_config = SettingsConfigDict(
        # GitHub Actions exposes `with:` inputs as INPUT_<NAME>
        env_prefix="INPUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # Tracker selection
    issue_tracker: Literal["jira", "linear"] = "jira"

    # Jira
    jira_base_url: str | None = None
    jira_email: str | None = None
    jira_api_token: SecretStr | None = None
    jira_project_key: str | None = None
    jira_pm_field: str = "customfield_pm"

    # Linear
    linear_api_key: SecretStr | None = None
    linear_team_key: str | None = None

    # Slack + filtering
    slack_bot_token: SecretStr
    slack_channel_or_user: str
    environment: str = "staging"
    pm_mapping_json: dict[str, str] = {}  # grouping key -> Slack user/channel ID
    only_active_sprint: bool = True
    ticket_status_filter: Annotated[list[str] | None, NoDecode] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Inputs and .env override the TOML defaults passed as init kwargs
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("jira_base_url")
    @classmethod
    def _check_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not value.startswith(("https://", "http://")):
            raise ValueError(f"jira_base_url must be an http(s) URL, got '{value}'")
        return value.rstrip("/")

    @field_validator("only_active_sprint", mode="before")
    @classmethod
    def _parse_only_active(cls, value: Any) -> Any:
        # Only the literal "false" disables the filter
        if isinstance(value, str):
            return value.strip() != "false"
        return value

    @field_validator("ticket_status_filter", mode="before")
    @classmethod
    def _split_statuses(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list | tuple):
            statuses = [str(s).strip() for s in value if str(s).strip()]
            return statuses or None
        return value

    @property
    def pm_mapping(self) -> dict[str, str]:
        return dict(self.pm_mapping_json)


def missing_tracker_fields(settings: PmuSettings) -> list[str]:
    """Return the required fields for the selected tracker that are unset."""
    required = REQUIRED_TRACKER_FIELDS.get(settings.issue_tracker, ())
    return [name for name in required if not getattr(settings, name)]


@lru_cache(maxsize=1)
def _load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load the TOML defaults file, returning an empty document if missing."""
    if not path.exists():
        return tomlkit.document()
    with path.open() as fh:
        return tomlkit.load(fh)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"]) or "settings"
        parts.append(f"{field}: {err['msg']}")
    return "; ".join(parts)


def get_settings(config_path: Path | None = None) -> PmuSettings:
    """Resolve and validate settings for one run.

    Precedence (highest to lowest):
    1. INPUT_* environment variables (action inputs)
    2. .env in the working directory
    3. config file (--config, PMU_CONFIG, or ./pmu.toml)

    Raises ConfigurationError on anything invalid or missing, including the
    credentials of the selected tracker.
    """
    path = config_path or Path(os.environ.get("PMU_CONFIG") or CONFIG_PATH)
    try:
        # unwrap() turns tomlkit containers into plain dicts and lists
        defaults = _load_toml(path).unwrap()
    except (OSError, TOMLKitError) as exc:
        raise ConfigurationError(f"Invalid configuration: cannot read {path}: {exc}") from exc

    try:
        settings = PmuSettings(**defaults)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(exc)}") from exc
    except SettingsError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    missing = missing_tracker_fields(settings)
    if missing:
        raise ConfigurationError(f'{missing[0]} is required when issue_tracker is "{settings.issue_tracker}"')

    return settings
