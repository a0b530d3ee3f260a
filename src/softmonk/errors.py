"""
错误分类 - Error Taxonomy

每种错误都带有可直接展示给用户的友好提示；供应商细节只在服务端打印。
Every error carries a user-facing friendly message; vendor details are printed server-side only.
"""

from __future__ import annotations

from typing import Optional


class SoftMonkError(Exception):
    reason = "model_error"
    friendly_message = (
        "I'm having a little trouble connecting to my brain right now. "
        "Please give me a moment and try again."
    )


class ConfigurationError(SoftMonkError):
    """Provider credential or endpoint missing; nothing was sent."""

    reason = "config_error"
    friendly_message = (
        "This AI provider is not configured right now. Please pick another provider or try again later."
    )

    def __init__(self, provider_id: str, missing: str):
        super().__init__(f"{provider_id}: {missing} is not set")
        self.provider_id = provider_id
        self.missing = missing


class ProviderError(SoftMonkError):
    def __init__(self, provider_id: str, detail: str = ""):
        super().__init__(f"{provider_id}: {detail}" if detail else provider_id)
        self.provider_id = provider_id
        self.detail = detail


class UpstreamError(ProviderError):
    """Non-2xx answer from the vendor API."""

    friendly_message = "I'm sorry, but I've encountered an error. Please try again in a moment."

    def __init__(self, provider_id: str, detail: str = "", status_code: Optional[int] = None):
        super().__init__(provider_id, detail)
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    reason = "rate_limited"
    friendly_message = (
        "Whoa, you're on fire! You've sent a lot of requests in a short time. "
        "Please slow down and wait a moment before trying again."
    )

    def __init__(self, provider_id: str, detail: str = ""):
        super().__init__(provider_id, detail, status_code=429)


class TransientNetworkError(ProviderError):
    reason = "timeout"
    friendly_message = "I'm having trouble connecting to the internet. Please check your connection and try again."


class EmptyHistoryError(SoftMonkError):
    reason = "empty_history"
    friendly_message = "I didn't catch that. Could you say it again?"


class CatalogUnavailableError(SoftMonkError):
    reason = "catalog_unavailable"
