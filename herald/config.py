import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

CONFIG_FILE_ENV = "HERALD_CONFIG"


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the app.yaml path, overridable with $HERALD_CONFIG."""
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = config_path or get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./herald.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = True
    echo: bool = False


class AlertsConfig(BaseModel):
    """Alert plugin instance and group membership behaviour."""

    # Group that every GLOBAL instance is automatically a member of
    global_alert_group_id: int = 2
    # Versioned membership writes retried this many times before giving up
    membership_retry_limit: int = Field(default=5, ge=1)
    # Delete a freshly created GLOBAL instance if the group update fails
    compensate_failed_sync: bool = True
    validate_global_group_on_startup: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HERALD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Database config (loaded from app.yaml)
    db: DatabaseConfig = DatabaseConfig()

    alerts: AlertsConfig = AlertsConfig()

    logging: LoggingConfig = LoggingConfig()


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment, .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    # Merge YAML config with settings
    updates = {}

    if "debug" in app_config:
        updates["debug"] = bool(app_config["debug"])

    if "db" in app_config:
        updates["db"] = DatabaseConfig(**app_config["db"])

    if "alerts" in app_config:
        updates["alerts"] = AlertsConfig(**app_config["alerts"])

    if "logging" in app_config:
        updates["logging"] = LoggingConfig(**app_config["logging"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
