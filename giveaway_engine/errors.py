"""Business-rule errors raised by the giveaway lifecycle.

Every message is short and safe to show to the member who triggered the
action; the interaction layer relays ``str(exc)`` verbatim.
"""

from __future__ import annotations


class GiveawayError(Exception):
    """Base class for rule violations that leave the record unmodified."""


class ValidationError(GiveawayError):
    """Malformed duration or missing required input."""


class ConflictError(GiveawayError):
    """An open giveaway already exists in the target channel."""


class PreconditionError(GiveawayError):
    """The giveaway is not in a state that permits the operation."""


class NotEligibleError(GiveawayError):
    """The participant does not meet the entry requirements."""


class NoEntriesError(GiveawayError):
    """Draw or reroll attempted over an empty or zero-weight pool."""


class NotFoundError(GiveawayError):
    """Unknown giveaway id."""
