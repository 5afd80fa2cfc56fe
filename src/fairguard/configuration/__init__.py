"""
Configuration management for FairGuard.

- **app_configuration.py**: fcntl-locked YAML loader for global settings.
  Exposes warning expiry and threshold, spam detection limits, context window
  sizes, appeal deadline, abuse-check lookback, pending-cache TTLs, rate
  limits, admin identities and the database path. Falls back to defaults on
  missing files or out-of-range values.

- **ai_settings.py**: Classifier provider selection, per-provider model,
  endpoint and API-key environment variable, plus timeout and retry tuning.
"""
