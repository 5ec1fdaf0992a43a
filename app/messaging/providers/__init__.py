# ============================================================================
# SpaceOps Messaging Providers
# ============================================================================

from .base import BaseProvider, ProviderResult, MessagePayload
from .twilio_sms import TwilioProvider

__all__ = [
    "BaseProvider",
    "ProviderResult",
    "MessagePayload",
    "TwilioProvider",
]
