"""Configuration management for the application tracker.

Loads from YAML config file with environment variable overrides.
Pattern: APPTRACK__{SECTION}__{KEY} overrides nested YAML keys.
Example: APPTRACK__BACKUP__MAX_BACKUPS=20

Secrets have dedicated env vars that win over YAML:
  JWT_SECRET_KEY, OPENAI_API_KEY, CRON_SECRET, DATABASE_URL, APPTRACK_DB_PATH
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_DB_PATH = "/tmp/apptrack.db"


# --- Database ---


class DatabaseConfig(BaseModel):
    url: str = ""  # empty: sqlite file at APPTRACK_DB_PATH
    echo: bool = False


# --- Auth ---


class AuthConfig(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours


# --- AI ---


class AIConfig(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    large_model: str = "gpt-4o"
    timeout_seconds: float = 30.0
    requests_per_minute: int = Field(default=10, ge=1)
    requests_per_day: int = Field(default=100, ge=1)


# --- Notifications ---


class EmailChannelConfig(BaseModel):
    enabled: bool = False
    api_url: str = ""  # HTTP mail API accepting {from, to, subject, html, text}
    api_key: str = ""
    sender: str = "reminders@apptrack.local"


class NotificationsConfig(BaseModel):
    cron_secret: str = ""
    in_app_enabled: bool = True
    email: EmailChannelConfig = EmailChannelConfig()
    app_url: str = "http://localhost:3000"
    digest_hour: int = Field(default=8, ge=0, le=23)  # UTC hour digests go out


# --- Backup ---


class BackupConfig(BaseModel):
    max_backups: int = Field(default=10, ge=1)
    storage: str = "local"  # local / gcs
    local_dir: str = "/tmp/apptrack-backups"
    gcs_bucket: str = ""
    gcs_prefix: str = "apptrack/backups"


# --- HTTP ---


class CORSConfig(BaseModel):
    origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]


class PaginationConfig(BaseModel):
    default_limit: int = 50
    max_limit: int = 100


# --- Service Config ---


class ServiceConfig(BaseModel):
    environment: str = "development"
    database: DatabaseConfig = DatabaseConfig()
    auth: AuthConfig = AuthConfig()
    ai: AIConfig = AIConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    backup: BackupConfig = BackupConfig()
    cors: CORSConfig = CORSConfig()
    pagination: PaginationConfig = PaginationConfig()

    @property
    def database_url(self) -> str:
        if self.database.url:
            return self.database.url
        return f"sqlite:///{os.getenv('APPTRACK_DB_PATH', DEFAULT_DB_PATH)}"


def _apply_env_overrides(config_dict: dict, prefix: str = "APPTRACK") -> dict:
    """Apply environment variable overrides to config dict.

    Pattern: APPTRACK__SECTION__KEY=value maps to config[section][key] = value
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}__"):
            continue
        parts = key[len(prefix) + 2 :].lower().split("__")
        target = config_dict
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        # Type coercion for common cases
        if value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        target[parts[-1]] = value
    return config_dict


def _apply_secret_env(config_dict: dict) -> dict:
    """Dedicated env vars for secrets (common deployment pattern)."""
    secrets = [
        ("DATABASE_URL", "database", "url"),
        ("JWT_SECRET_KEY", "auth", "secret_key"),
        ("OPENAI_API_KEY", "ai", "api_key"),
        ("CRON_SECRET", "notifications", "cron_secret"),
    ]
    for env_name, section, key in secrets:
        value = os.getenv(env_name)
        if value:
            config_dict.setdefault(section, {})[key] = value
    if os.getenv("ENVIRONMENT"):
        config_dict["environment"] = os.getenv("ENVIRONMENT")
    return config_dict


def load_config(
    config_path: Optional[str] = None,
) -> ServiceConfig:
    """Load configuration from YAML file with env overrides.

    Priority: secret env vars > APPTRACK__* env vars > YAML file > defaults
    """
    config_dict = {}

    # 1. Load YAML if exists
    if config_path is None:
        config_path = os.getenv("APPTRACK_CONFIG", "config/apptrack.yml")
    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            config_dict = yaml.safe_load(f) or {}

    # 2. Apply env overrides
    config_dict = _apply_env_overrides(config_dict)
    config_dict = _apply_secret_env(config_dict)

    return ServiceConfig(**config_dict)


# Singleton for the service
_config: Optional[ServiceConfig] = None


def get_config() -> ServiceConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[str] = None) -> ServiceConfig:
    global _config
    _config = load_config(config_path)
    return _config
