"""
Users API.

Registry endpoints plus the two user-initiated ledger operations:
- POST /users/me/transactions          request a redemption
- GET  /users/me/transactions          own history
- POST /users/<utorid>/transactions    transfer points to <utorid>
"""
from flask import Blueprint, g, jsonify, request

from ..extensions import db
from ..middleware.auth_context import require_role
from ..models.user import Role
from ..services import TransactionQueryService, UserService, get_ledger
from ..services.commands import CreateRedemption, CreateTransfer
from ..services.transaction_query import Page, TransactionFilters
from .transactions import page_from_request

users_bp = Blueprint('users', __name__)


# ==================== Registry ====================

@users_bp.route('', methods=['POST'])
@require_role(Role.CASHIER)
def create_user():
    user = UserService(db.session).create_user(g.caller, request.get_json(silent=True) or {})
    return jsonify(user.to_dict()), 201


@users_bp.route('', methods=['GET'])
@require_role(Role.MANAGER)
def list_users():
    """
    List users.

    Query params:
        name: utorid or name contains
        role: exact role
        verified: true/false
    """
    page = Page.from_args(request.args)
    return jsonify(UserService(db.session).list_users(g.caller, request.args, page))


@users_bp.route('/me', methods=['GET'])
@require_role(Role.REGULAR)
def get_me():
    return jsonify(UserService(db.session).get_user(g.caller.subject).to_dict())


@users_bp.route('/<identifier>', methods=['GET'])
@require_role(Role.CASHIER)
def get_user(identifier):
    return jsonify(UserService(db.session).get_user(identifier).to_dict())


@users_bp.route('/<identifier>', methods=['PATCH'])
@require_role(Role.MANAGER)
def update_user(identifier):
    result = UserService(db.session).update_user(
        g.caller, identifier, request.get_json(silent=True) or {}
    )
    return jsonify(result)


# ==================== Own transactions ====================

@users_bp.route('/me/transactions', methods=['POST'])
@require_role(Role.REGULAR)
def create_redemption():
    command = CreateRedemption.from_payload(request.get_json(silent=True) or {})
    result = get_ledger().create_redemption(g.caller, command)
    return jsonify(result.to_dict()), 201


@users_bp.route('/me/transactions', methods=['GET'])
@require_role(Role.REGULAR)
def list_own_transactions():
    filters = TransactionFilters.from_args(request.args)
    result = TransactionQueryService(db.session).list_own_transactions(
        g.caller.subject, filters, page_from_request()
    )
    return jsonify(result)


@users_bp.route('/<utorid>/transactions', methods=['POST'])
@require_role(Role.REGULAR)
def create_transfer(utorid):
    command = CreateTransfer.from_payload(utorid, request.get_json(silent=True) or {})
    result = get_ledger().create_transfer(g.caller, command)
    return jsonify(result.to_dict()), 201
