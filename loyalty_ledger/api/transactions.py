"""
Transactions API.

Endpoints:
- POST  /transactions                   purchase or adjustment
- GET   /transactions                   filtered history (manager)
- GET   /transactions/<id>              single transaction (manager)
- PATCH /transactions/<id>/suspicious   flag or clear a transaction (manager)
- PATCH /transactions/<id>/processed    complete a pending redemption (cashier)
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..middleware.auth_context import require_role
from ..models.user import Role
from ..services import TransactionQueryService, get_ledger, get_suspicious_flag_controller
from ..services.commands import (
    CreatePurchase,
    ProcessRedemption,
    SetSuspicious,
    transaction_command_from_payload,
)
from ..services.transaction_query import Page, TransactionFilters

transactions_bp = Blueprint('transactions', __name__)


def page_from_request() -> Page:
    return Page.from_args(
        request.args,
        default_limit=current_app.config['TRANSACTIONS_PAGE_LIMIT_DEFAULT'],
        max_limit=current_app.config['TRANSACTIONS_PAGE_LIMIT_MAX'],
    )


@transactions_bp.route('', methods=['POST'])
@require_role(Role.CASHIER)
def create_transaction():
    """
    Create a purchase (cashier+) or an adjustment (manager+).

    Request body is discriminated by "type".
    """
    command = transaction_command_from_payload(request.get_json(silent=True))
    ledger = get_ledger()

    if isinstance(command, CreatePurchase):
        result = ledger.create_purchase(g.caller, command)
    else:
        result = ledger.create_adjustment(g.caller, command)

    return jsonify(result.to_dict()), 201


@transactions_bp.route('', methods=['GET'])
@require_role(Role.MANAGER)
def list_transactions():
    """
    List transactions, newest first.

    Query params:
        name, createdBy, suspicious, type, relatedId, amount + operator (gte|lte),
        promotionId, page, limit
    """
    filters = TransactionFilters.from_args(request.args)
    result = TransactionQueryService(db.session).list_transactions(filters, page_from_request())
    return jsonify(result)


@transactions_bp.route('/<int:transaction_id>', methods=['GET'])
@require_role(Role.MANAGER)
def get_transaction(transaction_id):
    return jsonify(TransactionQueryService(db.session).get_transaction(transaction_id))


@transactions_bp.route('/<int:transaction_id>/suspicious', methods=['PATCH'])
@require_role(Role.MANAGER)
def set_suspicious(transaction_id):
    command = SetSuspicious.from_payload(transaction_id, request.get_json(silent=True) or {})
    result = get_suspicious_flag_controller().set_suspicious(g.caller, command)
    return jsonify(result.to_dict())


@transactions_bp.route('/<int:transaction_id>/processed', methods=['PATCH'])
@require_role(Role.CASHIER)
def process_redemption(transaction_id):
    command = ProcessRedemption.from_payload(transaction_id, request.get_json(silent=True) or {})
    result = get_ledger().process_redemption(g.caller, command)
    return jsonify(result.to_dict())
