# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/shopledger/routes/inventory.py
"""Inventory item API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..models.inventory import ITEM_CONDITIONS, ITEM_STATUSES
from ..schemas import CreateItemInput, ListQuery, UpdateItemInput
from ..services import inventory_service
from ..validation import require_choice


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@json_errors("list inventory")
def list_inventory_route():
    """
    Stock listing (unsold, active items) with purchase and repair cost.

    Query params: q (IMEI/brand/model search), status, condition, page, per_page
    """
    query = ListQuery.from_args(
        request.args,
        status=lambda value, name: require_choice(value, name, ITEM_STATUSES),
        condition=lambda value, name: require_choice(value, name, ITEM_CONDITIONS),
    )
    result = inventory_service.list_items(
        q=query.q,
        page=query.page,
        per_page=query.per_page,
        **query.filters,
    )
    return jsonify(result), 200


@inventory_bp.post("")
@json_errors("create inventory item")
def create_item_route():
    data = CreateItemInput.from_payload(request.get_json(silent=True))
    item = inventory_service.create_item(data)
    return jsonify({"item": item.to_dict()}), 201


@inventory_bp.get("/<int:item_id>")
@json_errors("get inventory item")
def get_item_route(item_id: int):
    return jsonify({"item": inventory_service.get_active_item(item_id).to_dict()}), 200


@inventory_bp.put("/<int:item_id>")
@json_errors("update inventory item")
def update_item_route(item_id: int):
    data = UpdateItemInput.from_payload(request.get_json(silent=True))
    item = inventory_service.update_item(item_id, data)
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.delete("/<int:item_id>")
@json_errors("delete inventory item")
def delete_item_route(item_id: int):
    inventory_service.deactivate_item(item_id)
    return jsonify({"ok": True}), 200
