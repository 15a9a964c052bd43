"""AI Provider Gateway Layer.

Dispatches prompts to AI answer providers with:
  - Adaptive Rate Limiter (RPM/TPM per provider)
  - Provider Adapters (protocol differences, model/version fallbacks)
  - Retry policy (exponential backoff with jitter)
  - Response Normalizer (persisted per-provider sub-result)
"""
