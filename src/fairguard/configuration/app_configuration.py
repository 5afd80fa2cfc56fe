from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from fairguard.configuration.ai_settings import AISettings, SUPPORTED_PROVIDERS
from fairguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("FAIRGUARD_CONFIG", "./config/app_config.yml")).resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed shortcuts for every option the moderation engine recognises. Values
    outside their valid range are reported once per reload and replaced by the
    default. Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path | None = CONFIG_PATH, data: Dict[str, Any] | None = None) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self._problems: List[str] = []
        if data is not None:
            self._data = data
            self.validate()
        else:
            self.reload()

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "AppConfig":
        """Build a config directly from a mapping (no file access)."""
        return cls(config_path=None, data=data)

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        if self.config_path is None:
            return {}
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found; using defaults.", self.config_path)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        value = self._data.get(name, {})
        return value if isinstance(value, dict) else {}

    def _number(self, section: str, key: str, default: float, low: float | None = None, high: float | None = None) -> float:
        raw = self._section(section).get(key, default)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            self._note(f"{section}.{key} must be numeric (got {raw!r})")
            return default
        if (low is not None and value < low) or (high is not None and value > high):
            self._note(f"{section}.{key} must be within {low}-{high} (got {raw!r})")
            return default
        return value

    def _int(self, section: str, key: str, default: int, low: int | None = None, high: int | None = None) -> int:
        return int(self._number(section, key, default, low, high))

    def _note(self, problem: str) -> None:
        if problem not in self._problems:
            self._problems.append(problem)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        self.validate()
        return self._data

    def validate(self) -> List[str]:
        """Evaluate every bounded option and log out-of-range values as warnings."""
        self._problems = []
        # Touch every bounded accessor so problems are collected up front
        _ = (
            self.warn_threshold, self.warning_expiry_days, self.spam_message_count,
            self.spam_time_window_seconds, self.max_message_length, self.rate_limit_max_commands,
            self.rate_limit_window_seconds, self.appeal_deadline_days, self.manual_timeout_seconds,
        )
        if self.ai_settings.provider not in SUPPORTED_PROVIDERS:
            self._note(f"ai_settings.provider must be one of {', '.join(SUPPORTED_PROVIDERS)}")
        if self._problems:
            logger.warning("[APP CONFIGURATION] Configuration warnings: %s", "; ".join(self._problems))
        return list(self._problems)

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    # --------------------------
    # Warnings
    # --------------------------
    @property
    def warning_expiry_days(self) -> float:
        return self._number("warnings", "expiry_days", 30, 0.001, 3650)

    @property
    def warn_threshold(self) -> int:
        return self._int("warnings", "threshold", 3, 1, 100)

    # --------------------------
    # Spam / long message detection
    # --------------------------
    @property
    def spam_message_count(self) -> int:
        return self._int("spam", "message_count", 5, 1, 100)

    @property
    def spam_time_window_seconds(self) -> float:
        return self._number("spam", "time_window_seconds", 10, 1, 3600)

    @property
    def max_message_length(self) -> int:
        return self._int("spam", "max_message_length", 2000, 100, 10000)

    @property
    def tracking_retention_days(self) -> float:
        return self._number("spam", "tracking_retention_days", 30, 1, 365)

    # --------------------------
    # Context window
    # --------------------------
    @property
    def context_before(self) -> int:
        return self._int("context", "before", 10, 0, 100)

    @property
    def context_after(self) -> int:
        return self._int("context", "after", 10, 0, 100)

    # --------------------------
    # Arbitration
    # --------------------------
    @property
    def appeal_deadline_days(self) -> float:
        return self._number("appeals", "deadline_days", 3, 0, 365)

    @property
    def abuse_lookback_hours(self) -> float:
        return self._number("abuse_check", "lookback_hours", 1, 0, 24 * 30)

    @property
    def abuse_repeat_threshold(self) -> int:
        return self._int("abuse_check", "repeat_threshold", 2, 1, 100)

    @property
    def abuse_min_context_length(self) -> int:
        return self._int("abuse_check", "min_context_length", 50, 0, 100000)

    @property
    def manual_timeout_seconds(self) -> int:
        """Length of a moderator-issued timeout; the platform caps it at 28 days."""
        return self._int("timeouts", "manual_duration_seconds", 3600, 60, 28 * 86400)

    # --------------------------
    # Pending caches
    # --------------------------
    @property
    def pending_warn_ttl_seconds(self) -> float:
        return self._number("pending", "warn_ttl_seconds", 300, 1, 86400)

    @property
    def confirmation_ttl_seconds(self) -> float:
        return self._number("pending", "confirmation_ttl_seconds", 86400, 1, 7 * 86400)

    # --------------------------
    # Rate limiting
    # --------------------------
    @property
    def rate_limit_max_commands(self) -> int:
        return self._int("rate_limit", "max_commands", 5, 1, 100)

    @property
    def rate_limit_window_seconds(self) -> float:
        return self._number("rate_limit", "window_seconds", 60, 1, 86400)

    # --------------------------
    # Trust score / maintenance / admins / storage
    # --------------------------
    @property
    def low_trust_threshold(self) -> int:
        return self._int("trust_score", "low_trust_threshold", 30, 0, 100)

    @property
    def maintenance_interval_seconds(self) -> float:
        return self._number("maintenance", "interval_seconds", 60, 1, 86400)

    @property
    def admin_user_ids(self) -> List[str]:
        return [str(v).strip() for v in self._section("admin").get("user_ids", []) or [] if str(v).strip()]

    @property
    def admin_role_ids(self) -> List[str]:
        return [str(v).strip() for v in self._section("admin").get("role_ids", []) or [] if str(v).strip()]

    @property
    def guild_id(self) -> str:
        """Guild whose roles and permissions decide admin status."""
        return str(self._section("admin").get("guild_id", "") or "").strip()

    @property
    def database_path(self) -> str:
        return str(self._section("database").get("path", "./data/fairguard.db"))

    @property
    def ai_settings(self) -> AISettings:
        """Return the AI settings wrapped in an AISettings helper."""
        settings = self._data.get("ai_settings", {})
        if not isinstance(settings, dict):
            settings = {}
        return AISettings(settings)
