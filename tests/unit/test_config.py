"""Tests for YAML config loading and environment overrides."""
import pytest

from apptrack.config import load_config

SECRET_VARS = ["DATABASE_URL", "JWT_SECRET_KEY", "OPENAI_API_KEY", "CRON_SECRET", "ENVIRONMENT"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in SECRET_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yml"))
    assert config.backup.max_backups == 10
    assert config.pagination.default_limit == 50
    assert config.auth.algorithm == "HS256"
    assert config.notifications.digest_hour == 8


def test_yaml_values(tmp_path):
    path = tmp_path / "apptrack.yml"
    path.write_text("backup:\n  max_backups: 3\n  storage: gcs\n  gcs_bucket: my-bucket\n")
    config = load_config(str(path))
    assert config.backup.max_backups == 3
    assert config.backup.storage == "gcs"
    assert config.backup.gcs_bucket == "my-bucket"


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "apptrack.yml"
    path.write_text("backup:\n  max_backups: 3\n")
    monkeypatch.setenv("APPTRACK__BACKUP__MAX_BACKUPS", "20")
    monkeypatch.setenv("APPTRACK__NOTIFICATIONS__EMAIL__ENABLED", "true")

    config = load_config(str(path))
    assert config.backup.max_backups == 20
    assert config.notifications.email.enabled is True


def test_secret_env_vars_win(tmp_path, monkeypatch):
    path = tmp_path / "apptrack.yml"
    path.write_text("auth:\n  secret_key: from-yaml\n")
    monkeypatch.setenv("JWT_SECRET_KEY", "from-env")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("CRON_SECRET", "cron-env")

    config = load_config(str(path))
    assert config.auth.secret_key == "from-env"
    assert config.ai.api_key == "sk-env"
    assert config.notifications.cron_secret == "cron-env"


def test_database_url(tmp_path, monkeypatch):
    monkeypatch.setenv("APPTRACK_DB_PATH", str(tmp_path / "app.db"))
    config = load_config(str(tmp_path / "missing.yml"))
    assert config.database_url == f"sqlite:///{tmp_path / 'app.db'}"

    monkeypatch.setenv("DATABASE_URL", "postgresql://db/apptrack")
    assert load_config(str(tmp_path / "missing.yml")).database_url == "postgresql://db/apptrack"
