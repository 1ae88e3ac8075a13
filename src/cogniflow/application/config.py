from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cogniflow.domain.constants import (
    DEFAULT_LEECH_ACTION,
    DEFAULT_LEECH_THRESHOLD,
    DEFAULT_NEW_ITEMS_PER_DAY,
    DEFAULT_RETENTION,
    DEFAULT_SIMULATION_DAYS,
    IO_RETRIES,
    IO_TIMEOUT,
)
from cogniflow.domain.models import EngineConfig, LeechAction

CONFIG_FILE = Path.home() / ".config/cogniflow/config.toml"


class AppConfig(BaseSettings):
    """
    Configuration model for cogniflow.
    Supports loading from:
    1. Environment variables (COGNIFLOW_*)
    2. Config file (~/.config/cogniflow/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="COGNIFLOW_",
        toml_file=CONFIG_FILE,
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/cogniflow")

    # Remote
    backend: Literal["file", "http", "none"] = "none"
    remote_path: Path | None = None
    remote_url: str | None = None
    api_key: str | None = None

    # Engine
    leech_threshold: int = Field(default=DEFAULT_LEECH_THRESHOLD, ge=1)
    leech_action: LeechAction = LeechAction(DEFAULT_LEECH_ACTION)
    simulation_retention: float = Field(default=DEFAULT_RETENTION, ge=0.0, le=1.0)
    simulation_new_per_day: int = Field(default=DEFAULT_NEW_ITEMS_PER_DAY, ge=0)
    simulation_days: int = Field(default=DEFAULT_SIMULATION_DAYS, ge=0)

    # Sync
    io_timeout: float = Field(default=IO_TIMEOUT, gt=0)
    io_retries: int = Field(default=IO_RETRIES, ge=0)
    push_after_merge: bool = True

    verbose: int = 1

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

        # First source wins: CLI overrides, then env, then the file
        if CONFIG_FILE.exists():
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=CONFIG_FILE),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", "remote_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser()

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / "snapshot.json"

    @property
    def baseline_path(self) -> Path:
        return self.data_dir / "baseline.json"

    def engine(self) -> EngineConfig:
        """The closed subset of settings the pure engines consume."""
        return EngineConfig(
            leech_threshold=self.leech_threshold,
            leech_action=self.leech_action,
            retention=self.simulation_retention,
            new_items_per_day=self.simulation_new_per_day,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cogniflow/config.toml (if exists)
    3. Environment variables (COGNIFLOW_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not set
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
