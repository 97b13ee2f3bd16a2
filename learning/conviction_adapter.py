"""Conviction adapter: raise a user's confidence bar when outcomes trend adverse."""

import logging

from database.models import ConvictionPolicyDAO, SignalOutcomeDAO
from engine.entities import ConvictionPolicy
from utils.helpers import clamp, mean, to_num

logger = logging.getLogger("horsai.learning.conviction_adapter")

# Constraints
BASE_CONFIDENCE_THRESHOLD = 0.75
MAX_CONFIDENCE_THRESHOLD = 0.95
THRESHOLD_STEP = 0.03     # per refresh with a negative rolling mean
RAI_WINDOW = 20           # most recent outcomes considered


def next_threshold(previous: float, rai_mean: float) -> float:
    """Tighten by one step on a negative mean; never loosen."""
    if rai_mean < 0:
        return round(clamp(previous + THRESHOLD_STEP,
                           BASE_CONFIDENCE_THRESHOLD, MAX_CONFIDENCE_THRESHOLD), 4)
    return previous


class ConvictionAdapter:
    """Derives each user's confidence threshold from stored outcome RAI."""

    def __init__(self, db=None):
        self.outcome_dao = SignalOutcomeDAO(db)
        self.policy_dao = ConvictionPolicyDAO(db)

    def current_threshold(self, user_id: str) -> float:
        row = self.policy_dao.get(user_id)
        if not row:
            return BASE_CONFIDENCE_THRESHOLD
        return to_num(row["confidence_threshold"], BASE_CONFIDENCE_THRESHOLD)

    def refresh(self, user_id: str) -> ConvictionPolicy:
        """Recompute raiMean20 and upsert the user's policy row."""
        recent = [to_num(r, 0.0) for r in self.outcome_dao.get_recent_rai(user_id, RAI_WINDOW)]
        rai_mean = round(mean(recent), 6)

        previous = self.current_threshold(user_id)
        threshold = next_threshold(previous, rai_mean)

        self.policy_dao.upsert(user_id, rai_mean, threshold)
        if threshold != previous:
            logger.info(
                "Conviction threshold for %s raised %.2f -> %.2f (raiMean20=%+.4f over %d outcomes)",
                user_id, previous, threshold, rai_mean, len(recent),
            )
        else:
            logger.debug("Conviction threshold for %s unchanged at %.2f (raiMean20=%+.4f)",
                         user_id, threshold, rai_mean)

        row = self.policy_dao.get(user_id)
        return ConvictionPolicy(
            user_id=user_id,
            rai_mean_20=rai_mean,
            confidence_threshold=threshold,
            updated_at=row["updated_at"] if row else None,
        )
