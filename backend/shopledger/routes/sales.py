# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..schemas import CreateSaleInput, ListQuery, PaymentInput, UpdateSaleInput
from ..services import sale_service
from ..services.ledger_service import PAYMENT_TYPES
from ..validation import coerce_int, optional_datetime, optional_period_end, require_choice


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@json_errors("list sales")
def list_sales_route():
    query = ListQuery.from_args(
        request.args,
        customer_id=coerce_int,
        payment_type=lambda value, name: require_choice(value, name, PAYMENT_TYPES),
        date_from=optional_datetime,
        date_to=optional_period_end,
    )
    result = sale_service.list_sales(page=query.page, per_page=query.per_page, **query.filters)
    return jsonify(result), 200


@sales_bp.get("/available-items")
@json_errors("list sellable items")
def available_items_route():
    """Items in IN_STOCK or READY_FOR_SALE with no sale attached (optional ?q= search)."""
    query = ListQuery.from_args(request.args)
    return jsonify({"items": sale_service.list_available_items(query.q)}), 200


@sales_bp.post("")
@json_errors("create sale")
def create_sale_route():
    data = CreateSaleInput.from_payload(request.get_json(silent=True))
    sale = sale_service.create_sale(data)
    return jsonify({"sale": sale_service.get_sale(sale.id)}), 201


@sales_bp.get("/<int:sale_id>")
@json_errors("get sale")
def get_sale_route(sale_id: int):
    return jsonify({"sale": sale_service.get_sale(sale_id)}), 200


@sales_bp.put("/<int:sale_id>")
@json_errors("update sale")
def update_sale_route(sale_id: int):
    data = UpdateSaleInput.from_payload(request.get_json(silent=True))
    sale = sale_service.update_sale(sale_id, data)
    return jsonify({"sale": sale_service.get_sale(sale.id)}), 200


@sales_bp.post("/<int:sale_id>/payments")
@json_errors("add sale payment")
def add_sale_payment_route(sale_id: int):
    data = PaymentInput.from_payload(request.get_json(silent=True))
    sale = sale_service.add_sale_payment(sale_id, data)
    return jsonify({"sale": sale_service.get_sale(sale.id)}), 201


@sales_bp.delete("/<int:sale_id>")
@json_errors("delete sale")
def delete_sale_route(sale_id: int):
    """Soft-delete a sale; its items go back to READY_FOR_SALE."""
    return jsonify(sale_service.delete_sale(sale_id)), 200
