import logging
import os
import tomllib
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(os.environ.get("DECKLIST_CONFIG_DIR", Path.home() / ".config" / "decklist"))
DATA_DIR = Path(os.environ.get("DECKLIST_DATA_DIR", Path.home() / ".local" / "share" / "decklist"))
CONFIG_FILE = CONFIG_DIR / "config.toml"


class Settings(BaseSettings):
    """
    Application settings.

    Sources, highest priority first: constructor arguments, DECKLIST_*
    environment variables, a .env file, then config.toml.
    """

    model_config = SettingsConfigDict(
        env_prefix="DECKLIST_",
        env_file=".env",
        extra="ignore",
        toml_file=CONFIG_FILE,
    )

    # Reference database
    use_database: bool = True
    database_path: Path = DATA_DIR / "database"
    database_age_limit: int = Field(default=7, ge=0)
    database_num: int = Field(default=3, ge=0)

    # Collection auto-loaded on startup
    collection_path: Path | None = None

    # Scryfall bulk data endpoint (Oracle Cards: one entry per card)
    bulk_data_url: str = "https://api.scryfall.com/bulk-data/oracle-cards"
    user_agent: str = "decklist/0.1"

    # Seconds before a download is abandoned and treated as a failed refresh
    download_timeout: float = Field(default=300.0, gt=0)

    # Fuzzy match acceptance: edits allowed per character of the name
    fuzzy_max_ratio: float = Field(default=0.2, ge=0.0, le=1.0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
        )


class _EnvOnlySettings(Settings):
    """Settings that skip config.toml."""

    model_config = SettingsConfigDict(toml_file=None)


def load_settings(**overrides: object) -> Settings:
    """
    Load settings, falling back to defaults if config.toml is unusable.

    A broken config file must not stop the program; it is reported and
    ignored. That covers unreadable TOML and values that fail validation.
    Invalid environment variables or overrides still raise.
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except (tomllib.TOMLDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, e)
    except ValidationError as e:
        logger.warning("Ignoring invalid config file %s: %s", CONFIG_FILE, e)
    return _EnvOnlySettings(**overrides)  # type: ignore[arg-type]


def default_config_text(config: Settings | None = None) -> str:
    """TOML text for a config file holding `config` (defaults if None)."""
    config = config or Settings.model_construct()
    lines = [
        f"use_database = {'true' if config.use_database else 'false'}",
        f"database_path = {_toml_string(str(config.database_path))}",
        f"database_age_limit = {config.database_age_limit}",
        f"database_num = {config.database_num}",
    ]
    if config.collection_path is not None:
        lines.append(f"collection_path = {_toml_string(str(config.collection_path))}")
    return "\n".join(lines) + "\n"


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_default_config(path: Path = CONFIG_FILE) -> Path:
    """Create a config.toml with default settings. Existing files are left alone."""
    if path.exists():
        raise FileExistsError(f"Config file already exists at {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config_text(), encoding="utf-8")
    return path


settings = load_settings()
