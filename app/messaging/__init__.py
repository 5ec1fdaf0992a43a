# ============================================================================
# SpaceOps Outbound Messaging
# ============================================================================
# SMS and WhatsApp delivery via Twilio.
# ============================================================================

from typing import Optional

from .providers import BaseProvider, MessagePayload, ProviderResult, TwilioProvider

_provider: Optional[BaseProvider] = None


def get_messaging_provider() -> BaseProvider:
    """Get or create the process-wide messaging provider."""
    global _provider
    if _provider is None:
        _provider = TwilioProvider()
    return _provider


__all__ = [
    "BaseProvider",
    "MessagePayload",
    "ProviderResult",
    "TwilioProvider",
    "get_messaging_provider",
]
