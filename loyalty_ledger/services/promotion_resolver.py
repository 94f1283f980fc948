"""
Promotion eligibility resolution for purchases.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Sequence

from ..models.promotion import Promotion
from ..utils.exceptions import (
    InvalidPromotionError,
    PromotionAlreadyUsedError,
    PromotionNotApplicableError,
)
from .ports import PromotionCatalog

logger = logging.getLogger(__name__)


@dataclass
class ResolvedPromotions:
    """Promotions that apply to one purchase."""
    automatic: List[Promotion] = field(default_factory=list)
    manual: List[Promotion] = field(default_factory=list)

    @property
    def promotions(self) -> List[Promotion]:
        """automatic + manual, each promotion once, ordered by id."""
        by_id = {p.id: p for p in self.automatic}
        by_id.update({p.id: p for p in self.manual})
        return [by_id[pid] for pid in sorted(by_id)]

    @property
    def promotion_ids(self) -> List[int]:
        return [p.id for p in self.promotions]

    @property
    def one_time(self) -> List[Promotion]:
        return [p for p in self.manual if p.is_one_time]


class PromotionResolver:
    """
    Works out which promotions apply to a purchase.

    Reads only. Usage rows for one-time promotions are written later, inside
    the purchase's unit of work, so nothing is reserved for a purchase that
    never commits.
    """

    def __init__(self, catalog: PromotionCatalog):
        self.catalog = catalog

    def resolve(
        self,
        user_id: int,
        spent: Decimal,
        manual_promotion_ids: Sequence[int],
        as_of: datetime,
    ) -> ResolvedPromotions:
        """
        Resolve automatic and manually selected promotions for a purchase.

        Raises:
            InvalidPromotionError: a manual id does not exist
            PromotionNotApplicableError: a manual promotion is inactive or its minimum spend is not met
            PromotionAlreadyUsedError: a one-time promotion was already consumed by the user
        """
        automatic = self.catalog.automatic_promotions(spent, as_of)

        requested = list(dict.fromkeys(manual_promotion_ids))
        manual = self.catalog.promotions_by_id(requested)

        missing = set(requested) - {p.id for p in manual}
        if missing:
            raise InvalidPromotionError(missing)

        for promo in manual:
            if not promo.is_active_at(as_of):
                raise PromotionNotApplicableError(promo.id, 'promotion is not active')
            if not promo.meets_minimum(spent):
                raise PromotionNotApplicableError(promo.id, 'minimum spending not met')

        for promo in manual:
            if promo.is_one_time and self.catalog.has_usage(user_id, promo.id):
                raise PromotionAlreadyUsedError(promo.id)

        resolved = ResolvedPromotions(automatic=automatic, manual=manual)
        logger.debug(
            "Resolved promotions for user %s spent %s: %s", user_id, spent, resolved.promotion_ids
        )
        return resolved
