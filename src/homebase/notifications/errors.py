"""Delivery error taxonomy.

Channel senders raise these; the dispatcher and retry worker catch them and
record the outcome in the outbox. None of them should reach an HTTP caller.
"""

from __future__ import annotations


class DeliveryError(Exception):
    """Base class for notification delivery failures."""


class ConfigurationError(DeliveryError):
    """A channel is missing required configuration (keys, API credentials)."""


class PushConfigurationError(ConfigurationError):
    pass


class EmailConfigurationError(ConfigurationError):
    pass


class TransientDeliveryError(DeliveryError):
    """Network or provider error that may succeed on retry."""


class PermanentDeliveryError(DeliveryError):
    """The destination will never accept messages again (revoked endpoint)."""


class RecipientResolutionError(DeliveryError):
    """No user, profile or address could be found for the recipient."""


class OutboxStateError(Exception):
    """Illegal outbox status transition (terminal entries never change)."""
