"""
Exception taxonomy for the relay.

Three classes of failure exist once the relay is wired up:

- startup failures (``ConfigurationError``, ``RelayStartupError``) stop the
  process before any relay loop runs;
- per-message failures (``PublisherDeclarationError``) drop a single message;
- connection failures (everything else) end one run of a relay loop and are
  absorbed by the retry supervisor.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for relay errors."""

    pass


class ConfigurationError(RelayError):
    """Raised when settings cannot be loaded or fail validation."""

    pass


class RelayStartupError(RelayError):
    """Raised when a fabric cannot be opened or a subscriber declared."""

    pass


class PublisherDeclarationError(RelayError):
    """Raised when the overlay rejects a publisher for an address."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"Failed to declare publisher for {address!r}: {reason}")
        self.address = address
        self.reason = reason


class BrokerPublishError(RelayError):
    """Raised when the MQTT client refuses a publish."""

    pass


class BrokerSubscribeError(RelayError):
    """Raised when the MQTT client refuses a subscription."""

    pass


class OverlayPublishError(RelayError):
    """Raised when a Zenoh put fails."""

    pass


class OverlaySubscriptionClosed(RelayError):
    """Raised when receiving from an undeclared or closed subscriber."""

    pass
