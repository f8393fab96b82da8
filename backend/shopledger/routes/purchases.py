# Overview: Flask API routes for purchase operations; parses input and returns JSON responses.

# backend/shopledger/routes/purchases.py
"""Purchase API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..schemas import CreatePurchaseInput, ListQuery, PaymentInput, UpdatePurchaseInput
from ..services import purchase_service
from ..services.ledger_service import PAYMENT_TYPES
from ..validation import coerce_int, optional_datetime, optional_period_end, require_choice


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@json_errors("list purchases")
def list_purchases_route():
    """
    List active purchases, newest first.

    Query params: customer_id, payment_type, date_from, date_to, page, per_page
    """
    query = ListQuery.from_args(
        request.args,
        customer_id=coerce_int,
        payment_type=lambda value, name: require_choice(value, name, PAYMENT_TYPES),
        date_from=optional_datetime,
        date_to=optional_period_end,
    )
    result = purchase_service.list_purchases(
        page=query.page,
        per_page=query.per_page,
        **query.filters,
    )
    return jsonify(result), 200


@purchases_bp.post("")
@json_errors("create purchase")
def create_purchase_route():
    data = CreatePurchaseInput.from_payload(request.get_json(silent=True))
    purchase = purchase_service.create_purchase(data)
    return jsonify({"purchase": purchase_service.get_purchase(purchase.id)}), 201


@purchases_bp.get("/<int:purchase_id>")
@json_errors("get purchase")
def get_purchase_route(purchase_id: int):
    return jsonify({"purchase": purchase_service.get_purchase(purchase_id)}), 200


@purchases_bp.put("/<int:purchase_id>")
@json_errors("update purchase")
def update_purchase_route(purchase_id: int):
    """
    Update purchase fields and, when "items" is sent, its item set.

    Items with item_id are edited in place, items without item_id are added,
    active items missing from the list are removed.
    """
    data = UpdatePurchaseInput.from_payload(request.get_json(silent=True))
    purchase = purchase_service.update_purchase(purchase_id, data)
    return jsonify({"purchase": purchase_service.get_purchase(purchase.id)}), 200


@purchases_bp.post("/<int:purchase_id>/payments")
@json_errors("add purchase payment")
def add_purchase_payment_route(purchase_id: int):
    data = PaymentInput.from_payload(request.get_json(silent=True))
    purchase = purchase_service.add_purchase_payment(purchase_id, data)
    return jsonify({"purchase": purchase_service.get_purchase(purchase.id)}), 201


@purchases_bp.delete("/<int:purchase_id>")
@json_errors("delete purchase")
def delete_purchase_route(purchase_id: int):
    """Soft-delete a purchase and cascade to its items, repairs and the sales they ended up in."""
    return jsonify(purchase_service.delete_purchase(purchase_id)), 200
