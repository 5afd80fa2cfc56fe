"""
Classifier package for FairGuard.

- **providers.py**: ``ClassifierBackend`` implementations for Gemini,
  OpenAI-compatible endpoints (OpenAI, Cerebras) and Anthropic, plus
  ``create_backend`` which picks one from configuration.
- **classifier_gateway.py**: ``ClassifierGateway``, the retrying and
  time-bounded entry point every AI decision path goes through.
- **verdict_parsing.py**: strict JSON-schema parsing with keyword fallback.
- **prompts.py**: prompt builders for graylist, spam, abuse and appeal checks.
"""
