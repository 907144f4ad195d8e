"""Ticket weights and the weighted winner draw."""

from __future__ import annotations

import random
import secrets
from typing import Optional, Sequence

from .config import TicketWeights
from .errors import NoEntriesError
from .models import Entry, Participant


def compute_tickets(participant: Participant, weights: TicketWeights) -> int:
    """Return the lottery weight for a participant, clamped to ``max_total``."""
    tickets = weights.base
    if participant.is_booster:
        tickets += weights.booster_bonus
    return min(tickets, weights.max_total)


def select_winner(
    entries: Sequence[Entry], rng: Optional[random.Random] = None
) -> int:
    """Pick a user id with probability proportional to ticket weight.

    Withdrawn entries are ignored. Raises NoEntriesError when nothing with a
    positive weight remains.
    """
    pool = [entry for entry in entries if entry.is_active]
    if not pool:
        raise NoEntriesError("There are no valid entries to draw from.")
    total_weight = sum(entry.tickets for entry in pool)
    if total_weight <= 0:
        raise NoEntriesError("There are no valid entries to draw from.")

    rng = rng or secrets.SystemRandom()
    remainder = rng.random() * total_weight
    for entry in pool:
        remainder -= entry.tickets
        if remainder <= 0:
            return entry.user_id
    # float drift
    return pool[-1].user_id
