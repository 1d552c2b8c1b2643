from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cardwise.domain.constants import (
    DEFAULT_API_URL,
    DEFAULT_MAX_CARDS_PER_SESSION,
    DEFAULT_PAGE_SIZE,
    MAX_SESSION_CARDS,
    REQUEST_TIMEOUT,
)
from cardwise.domain.models import StudyMode

CONFIG_FILES = [
    Path.home() / ".config/cardwise/config.toml",
    Path.home() / ".cardwise.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for cardwise.
    Supports loading from:
    1. Environment variables (CARDWISE_*)
    2. Config file (~/.config/cardwise/config.toml)
    3. Manual overrides (CLI / server requests)
    """

    model_config = SettingsConfigDict(
        env_prefix="CARDWISE_",
        extra="ignore",
    )

    # Card store
    backend: Literal["memory", "http"] = "http"
    api_url: str = DEFAULT_API_URL
    api_token: str | None = None
    request_timeout: float = REQUEST_TIMEOUT

    # Sessions
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_cards_per_session: int = Field(
        default=DEFAULT_MAX_CARDS_PER_SESSION, ge=1, le=MAX_SESSION_CARDS
    )
    default_mode: StudyMode = StudyMode.FLIP

    # Memory backend seed data (JSON list of cards)
    cards_file: Path | None = None

    # Local study preferences
    shuffle_cards: bool = True
    show_progress: bool = True

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Sources earlier in the tuple take priority.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("api_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> str:
        return str(v).rstrip("/")


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cardwise/config.toml (if exists)
    3. Environment variables (CARDWISE_*)
    4. cli_overrides (passed from Typer or the server), None values ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
