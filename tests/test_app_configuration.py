from pathlib import Path

import pytest
import yaml

from fairguard.configuration.ai_settings import AISettings
from fairguard.configuration.app_configuration import AppConfig


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "warnings": {"expiry_days": 7, "threshold": 5},
        "spam": {"message_count": 8, "time_window_seconds": 20, "max_message_length": 1500},
        "appeals": {"deadline_days": 2},
        "admin": {"user_ids": [123456789012345678], "role_ids": ["42"], "guild_id": "555"},
        "database": {"path": "/tmp/fg.db"},
        "ai_settings": {"provider": "Claude", "max_retries": 5, "confirmation_required": True},
    }
    config_path.write_text(yaml.safe_dump(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.warning_expiry_days == 7
    assert config.warn_threshold == 5
    assert config.spam_message_count == 8
    assert config.spam_time_window_seconds == 20
    assert config.max_message_length == 1500
    assert config.appeal_deadline_days == 2
    assert config.admin_user_ids == ["123456789012345678"]
    assert config.admin_role_ids == ["42"]
    assert config.guild_id == "555"
    assert config.database_path == "/tmp/fg.db"

    ai_settings = config.ai_settings
    assert ai_settings.provider == "claude"
    assert ai_settings.max_retries == 5
    assert ai_settings.confirmation_required is True


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.warning_expiry_days == 30
    assert config.warn_threshold == 3
    assert config.spam_message_count == 5
    assert config.spam_time_window_seconds == 10
    assert config.max_message_length == 2000
    assert config.context_before == 10
    assert config.context_after == 10
    assert config.appeal_deadline_days == 3
    assert config.abuse_lookback_hours == 1
    assert config.abuse_repeat_threshold == 2
    assert config.abuse_min_context_length == 50
    assert config.pending_warn_ttl_seconds == 300
    assert config.confirmation_ttl_seconds == 86400
    assert config.rate_limit_max_commands == 5
    assert config.rate_limit_window_seconds == 60
    assert config.admin_user_ids == []
    assert config.ai_settings.provider == "gemini"


def test_out_of_range_values_fall_back_with_warning(config_path: Path) -> None:
    config_payload = {
        "warnings": {"threshold": 0},
        "spam": {"max_message_length": 50, "message_count": "lots"},
        "rate_limit": {"max_commands": 1000},
    }
    config_path.write_text(yaml.safe_dump(config_payload), encoding="utf-8")

    config = AppConfig(config_path)
    problems = config.validate()

    assert config.warn_threshold == 3
    assert config.max_message_length == 2000
    assert config.spam_message_count == 5
    assert config.rate_limit_max_commands == 5
    assert any("warnings.threshold" in p for p in problems)
    assert any("spam.message_count" in p for p in problems)


def test_malformed_yaml_uses_defaults(config_path: Path) -> None:
    config_path.write_text("warnings: [unclosed", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == {}
    assert config.warn_threshold == 3


def test_unknown_provider_is_reported() -> None:
    config = AppConfig.from_mapping({"ai_settings": {"provider": "mystery"}})

    assert any("ai_settings.provider" in p for p in config.validate())


def test_provider_settings_merge_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CEREBRAS_API_KEY", "csk-test-key")
    settings = AISettings({"provider": "cerebras", "providers": {"cerebras": {"model": "custom-model"}}})

    provider = settings.provider_settings()

    assert provider.model == "custom-model"
    assert provider.base_url == "https://api.cerebras.ai/v1"
    assert provider.api_key_env == "CEREBRAS_API_KEY"
    assert provider.api_key == "csk-test-key"


def test_ai_settings_defaults() -> None:
    settings = AISettings()

    assert settings.provider == "gemini"
    assert settings.timeout_seconds == 30
    assert settings.max_retries == 3
    assert settings.backoff_base_seconds == 1
    assert settings.temperature == pytest.approx(0.3)
    assert settings.confirmation_required is False
