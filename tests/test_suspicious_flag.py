"""
Tests for SuspiciousFlagController.

Flagging revokes a credited amount, clearing grants a withheld one, and
repeating either is a no-op.
"""
import pytest
from decimal import Decimal

from loyalty_ledger.extensions import db
from loyalty_ledger.models import Role, Transaction
from loyalty_ledger.services import get_suspicious_flag_controller
from loyalty_ledger.services.commands import (
    CallerContext,
    CreateAdjustment,
    CreatePurchase,
    CreateRedemption,
    ProcessRedemption,
    SetSuspicious,
)
from loyalty_ledger.utils.exceptions import (
    ForbiddenError,
    NegativeBalanceError,
    TransactionNotFoundError,
    ValidationError,
)

from .conftest import caller_for, make_user


@pytest.fixture
def controller(app):
    return get_suspicious_flag_controller()


class TestSetSuspicious:

    def test_flag_then_clear_round_trip(self, ledger, controller, manager, cashier, sample_user):
        purchase = ledger.create_purchase(caller_for(cashier), CreatePurchase('member01', Decimal('30')))
        assert sample_user.points == 30

        flagged = controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, True))
        assert flagged.balance_delta == -30
        assert flagged.suspicious is True
        assert sample_user.points == 0

        cleared = controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, False))
        assert cleared.balance_delta == 30
        assert cleared.suspicious is False
        assert sample_user.points == 30

    def test_repeat_is_noop(self, ledger, controller, manager, cashier, sample_user):
        purchase = ledger.create_purchase(caller_for(cashier), CreatePurchase('member01', Decimal('30')))

        controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, True))
        again = controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, True))

        assert again.balance_delta == 0
        assert sample_user.points == 0

    def test_clearing_withheld_purchase_grants_points(
        self, ledger, controller, manager, suspicious_cashier, sample_user
    ):
        purchase = ledger.create_purchase(
            caller_for(suspicious_cashier), CreatePurchase('member01', Decimal('12'))
        )
        assert sample_user.points == 0

        result = controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, False))

        assert result.balance_delta == 12
        assert sample_user.points == 12
        assert result.to_dict()['transactionId'] == purchase.transaction_id

    def test_revoke_that_would_go_negative_rejected(self, ledger, controller, manager, cashier, sample_user):
        purchase = ledger.create_purchase(caller_for(cashier), CreatePurchase('member01', Decimal('30')))
        ledger.create_adjustment(caller_for(manager), CreateAdjustment('member01', -20))

        with pytest.raises(NegativeBalanceError):
            controller.set_suspicious(caller_for(manager), SetSuspicious(purchase.transaction_id, True))

        assert sample_user.points == 10
        assert db.session.get(Transaction, purchase.transaction_id).suspicious is False

    def test_pending_redemption_cannot_be_flagged(self, ledger, controller, manager):
        member = make_user('saver001', points=100)
        request = ledger.create_redemption(caller_for(member), CreateRedemption(40))

        with pytest.raises(ValidationError):
            controller.set_suspicious(caller_for(manager), SetSuspicious(request.transaction_id, True))

    def test_processed_redemption_flag_restores_points(self, ledger, controller, manager, cashier):
        member = make_user('saver001', points=100)
        request = ledger.create_redemption(caller_for(member), CreateRedemption(40))
        ledger.process_redemption(caller_for(cashier), ProcessRedemption(request.transaction_id))
        assert member.points == 60

        result = controller.set_suspicious(caller_for(manager), SetSuspicious(request.transaction_id, True))

        assert result.balance_delta == 40
        assert member.points == 100

    def test_cashier_cannot_flag(self, ledger, controller, cashier, sample_user):
        purchase = ledger.create_purchase(caller_for(cashier), CreatePurchase('member01', Decimal('5')))
        with pytest.raises(ForbiddenError):
            controller.set_suspicious(caller_for(cashier), SetSuspicious(purchase.transaction_id, True))

    def test_claimed_manager_checked_against_stored_role(self, ledger, controller, cashier, sample_user):
        purchase = ledger.create_purchase(caller_for(cashier), CreatePurchase('member01', Decimal('5')))
        claimed_manager = CallerContext(subject=cashier.id, role=Role.MANAGER)

        with pytest.raises(ForbiddenError):
            controller.set_suspicious(claimed_manager, SetSuspicious(purchase.transaction_id, True))

        assert sample_user.points == 5
        assert db.session.get(Transaction, purchase.transaction_id).suspicious is False

    def test_unknown_transaction(self, controller, manager):
        with pytest.raises(TransactionNotFoundError):
            controller.set_suspicious(caller_for(manager), SetSuspicious(404, True))
