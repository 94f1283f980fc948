"""
Business logic services for the loyalty ledger.
"""
from flask import current_app

from ..extensions import db
from .points_calculator import PointsCalculator
from .ports import SqlAlchemyLedgerStore
from .promotion_service import PromotionService
from .suspicious_flag import SuspiciousFlagController
from .transaction_ledger import TransactionLedger
from .transaction_query import TransactionQueryService
from .user_service import UserService


def get_ledger() -> TransactionLedger:
    """Build a ledger bound to the current request's session and app config."""
    return TransactionLedger(
        SqlAlchemyLedgerStore(db.session),
        calculator=PointsCalculator(current_app.config['POINTS_BASE_RATE']),
        require_verified=current_app.config['REQUIRE_VERIFIED_FOR_TRANSFERS'],
    )


def get_suspicious_flag_controller() -> SuspiciousFlagController:
    return SuspiciousFlagController(SqlAlchemyLedgerStore(db.session))


__all__ = [
    'PointsCalculator',
    'PromotionService',
    'SqlAlchemyLedgerStore',
    'SuspiciousFlagController',
    'TransactionLedger',
    'TransactionQueryService',
    'UserService',
    'get_ledger',
    'get_suspicious_flag_controller',
]
