# Overview: Flask API routes for customer balances and settlements.

# backend/shopledger/routes/customers.py
"""Customer ledger API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..schemas import CustomerPaymentInput
from ..services import customer_service, payment_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/balance")
@json_errors("get customer balance")
def customer_balance_route(customer_id: int):
    """Open debt (sales) and credit (purchases) for one customer."""
    return jsonify(customer_service.customer_balance(customer_id)), 200


@customers_bp.post("/<int:customer_id>/payments")
@json_errors("record customer payment")
def customer_payment_route(customer_id: int):
    """
    Settle several open documents at once.

    direction CUSTOMER_PAYS_SHOP pays down open sales, SHOP_PAYS_CUSTOMER
    pays down open purchases, oldest first.
    """
    data = CustomerPaymentInput.from_payload(request.get_json(silent=True))
    payment = payment_service.record_customer_payment(customer_id, data)
    return jsonify({"payment": payment.to_dict()}), 201
