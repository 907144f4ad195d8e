from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional

from .config import EligibilityConfig
from .models import Participant
from .ports import GiveawayStore

log = logging.getLogger(__name__)


def tenure_satisfied(
    first_seen: Optional[datetime], now: datetime, min_days: int
) -> bool:
    """True when the role was first observed at least ``min_days`` ago.

    No observation means no tenure; there is no retroactive credit.
    """
    if first_seen is None:
        return False
    return now - first_seen >= timedelta(days=min_days)


class EligibilityEvaluator:
    """Decides whether a participant may enter a giveaway.

    Holders of the member role always qualify. Holders of the tag role
    qualify once the role tracker has seen the role on them for at least
    ``min_role_age_days``.
    """

    def __init__(self, rules: EligibilityConfig, store: GiveawayStore) -> None:
        self.rules = rules
        self.store = store

    async def is_eligible(
        self, participant: Participant, *, now: Optional[datetime] = None
    ) -> bool:
        if participant.has_role(self.rules.member_role_id):
            return True

        tag_role_id = self.rules.tag_role_id
        if not participant.has_role(tag_role_id):
            log.debug(
                "Participant %s holds neither member nor tag role.", participant.user_id
            )
            return False

        first_seen = await self.store.get_role_first_seen(
            participant.guild_id, participant.user_id, tag_role_id
        )
        eligible = tenure_satisfied(
            first_seen, now or datetime.now(tz=UTC), self.rules.min_role_age_days
        )
        if not eligible:
            log.debug(
                "Participant %s tag role tenure too short (first seen %s).",
                participant.user_id,
                first_seen,
            )
        return eligible
