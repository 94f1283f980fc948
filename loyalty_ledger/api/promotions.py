"""
Promotions API.

Catalog CRUD. Managers manage; everyone else browses what is active now.
"""
from flask import Blueprint, g, jsonify, request

from ..extensions import db
from ..middleware.auth_context import require_role
from ..models.user import Role
from ..services import PromotionService
from ..services.transaction_query import Page

promotions_bp = Blueprint('promotions', __name__)


@promotions_bp.route('', methods=['POST'])
@require_role(Role.MANAGER)
def create_promotion():
    promotion = PromotionService(db.session).create_promotion(
        g.caller, request.get_json(silent=True) or {}
    )
    return jsonify(promotion.to_dict()), 201


@promotions_bp.route('', methods=['GET'])
@require_role(Role.REGULAR)
def list_promotions():
    """
    List promotions.

    Query params:
        name, type, started (manager), ended (manager), page, limit
    """
    page = Page.from_args(request.args)
    return jsonify(PromotionService(db.session).list_promotions(g.caller, request.args, page))


@promotions_bp.route('/<int:promotion_id>', methods=['GET'])
@require_role(Role.REGULAR)
def get_promotion(promotion_id):
    promotion = PromotionService(db.session).get_promotion(g.caller, promotion_id)
    return jsonify(promotion.to_dict(include_start=g.caller.role.at_least(Role.MANAGER)))


@promotions_bp.route('/<int:promotion_id>', methods=['PATCH'])
@require_role(Role.MANAGER)
def update_promotion(promotion_id):
    result = PromotionService(db.session).update_promotion(
        g.caller, promotion_id, request.get_json(silent=True) or {}
    )
    return jsonify(result)


@promotions_bp.route('/<int:promotion_id>', methods=['DELETE'])
@require_role(Role.MANAGER)
def delete_promotion(promotion_id):
    PromotionService(db.session).delete_promotion(g.caller, promotion_id)
    return '', 204
