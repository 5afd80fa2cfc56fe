import os
from typing import Any, Dict

# Provider names recognised by ``ai_settings.provider``
SUPPORTED_PROVIDERS = ("gemini", "openai", "cerebras", "claude")

DEFAULT_PROVIDER_SETTINGS: Dict[str, Dict[str, Any]] = {
    "gemini": {
        "model": "gemini-2.5-flash",
        "base_url": None,
        "api_key_env": "GEMINI_API_KEY",
    },
    "openai": {
        "model": "gpt-4o-mini",
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
    },
    "cerebras": {
        "model": "llama-3.3-70b",
        "base_url": "https://api.cerebras.ai/v1",
        "api_key_env": "CEREBRAS_API_KEY",
    },
    "claude": {
        "model": "claude-3-5-haiku-latest",
        "base_url": None,
        "api_key_env": "ANTHROPIC_API_KEY",
    },
}


class ProviderSettings:
    """Model, endpoint and credential lookup for one classifier provider."""

    def __init__(self, name: str, data: Dict[str, Any] | None = None) -> None:
        self.name = name
        merged = dict(DEFAULT_PROVIDER_SETTINGS.get(name, {}))
        merged.update({k: v for k, v in (data or {}).items() if v is not None})
        self.data = merged

    @property
    def model(self) -> str:
        return str(self.data.get("model") or "")

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def api_key_env(self) -> str:
        return str(self.data.get("api_key_env") or "")

    @property
    def api_key(self) -> str | None:
        """Resolve the API key from the environment variable named in config."""
        if not self.api_key_env:
            return None
        return os.getenv(self.api_key_env) or None


class AISettings:
    """Helper exposing typed accessors for classifier configuration.

    Wraps the ``ai_settings`` mapping of the application config. Secrets are
    never stored in the mapping itself; each provider names the environment
    variable holding its key.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def provider(self) -> str:
        value = str(self.data.get("provider", "gemini")).strip().lower()
        return value or "gemini"

    def provider_settings(self, name: str | None = None) -> ProviderSettings:
        """Return settings for ``name`` (defaults to the selected provider)."""
        name = name or self.provider
        providers = self.data.get("providers", {})
        section = providers.get(name) if isinstance(providers, dict) else None
        return ProviderSettings(name, section if isinstance(section, dict) else None)

    @property
    def timeout_seconds(self) -> float:
        return float(self.data.get("timeout_seconds", 30.0))

    @property
    def max_retries(self) -> int:
        return max(1, int(self.data.get("max_retries", 3)))

    @property
    def backoff_base_seconds(self) -> float:
        return float(self.data.get("backoff_base_seconds", 1.0))

    @property
    def temperature(self) -> float:
        return float(self.data.get("temperature", 0.3))

    @property
    def confirmation_required(self) -> bool:
        return bool(self.data.get("confirmation_required", False))
