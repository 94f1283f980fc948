"""
One-time promotion usage tracking.
"""
import logging
from typing import Iterable, List

from ..utils.exceptions import PromotionAlreadyUsedError
from .ports import TransactionStore, PromotionCatalog, UsageResult

logger = logging.getLogger(__name__)


class PromotionUsageTracker:
    """
    Records that a user consumed a one-time promotion.

    Must be called inside the purchase's unit of work: the usage row commits
    together with the transaction and balance change, or not at all.
    """

    def __init__(self, store: TransactionStore, catalog: PromotionCatalog):
        self.store = store
        self.catalog = catalog

    def has_used(self, user_id: int, promotion_id: int) -> bool:
        return self.catalog.has_usage(user_id, promotion_id)

    def mark_used(self, user_id: int, promotions: Iterable) -> List[int]:
        """
        Insert usage rows for every one-time promotion in `promotions`.

        Raises:
            PromotionAlreadyUsedError: another purchase consumed one of them first
        """
        recorded = []
        for promo in promotions:
            if not promo.is_one_time:
                continue
            # A failed flush expires every loaded instance, so keep the plain id
            promotion_id = promo.id
            if self.store.record_usage(user_id, promotion_id) is UsageResult.CONFLICT:
                raise PromotionAlreadyUsedError(promotion_id)
            recorded.append(promotion_id)
        return recorded
