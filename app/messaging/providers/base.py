# ============================================================================
# SpaceOps Messaging - Base Provider Interface
# ============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict
import os


@dataclass
class ProviderResult:
    """Result from a provider operation."""
    success: bool
    message_id: Optional[str] = None  # Provider's message ID
    external_status: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict = field(default_factory=dict)

    @classmethod
    def ok(cls, message_id: str = None, **kwargs):
        return cls(success=True, message_id=message_id, **kwargs)

    @classmethod
    def fail(cls, error: str, **kwargs):
        return cls(success=False, error=error, **kwargs)


@dataclass
class MessagePayload:
    """Outbound text message."""
    to: str  # Recipient phone number
    body: str
    metadata: Dict = field(default_factory=dict)


class BaseProvider(ABC):
    """
    Abstract base class for outbound text messaging.

    Implementations must never raise from send_sms()/send_whatsapp();
    every failure comes back as ProviderResult.fail().
    """

    channel: str = "base"
    display_name: str = "Base Provider"

    def __init__(self, config: Dict = None):
        """
        Initialize provider with optional config override.
        By default, reads from environment variables.
        """
        self.config = config or {}
        self._load_config()

    def _load_config(self):
        """Load configuration from environment. Override in subclasses."""
        pass

    def _get_env(self, key: str, default: str = None) -> Optional[str]:
        """Get config override or environment variable."""
        return self.config.get(key) or os.environ.get(key, default)

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider has all required configuration."""

    @abstractmethod
    def send_sms(self, payload: MessagePayload) -> ProviderResult:
        """Send a plain SMS."""

    @abstractmethod
    def send_whatsapp(self, payload: MessagePayload) -> ProviderResult:
        """Send a WhatsApp message."""

    def validate_address(self, address: str) -> bool:
        return bool(address and address.strip())

    def __repr__(self):
        configured = "configured" if self.is_configured() else "not configured"
        return f"<{self.__class__.__name__} ({self.channel}) [{configured}]>"
