# Overview: Flask API routes for repair operations; parses input and returns JSON responses.

# backend/shopledger/routes/repairs.py
"""Repair case API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..models.repairs import REPAIR_STATUSES
from ..schemas import (
    CreateRepairInput,
    ListQuery,
    RepairEntryInput,
    UpdateRepairEntryInput,
    UpdateRepairInput,
)
from ..services import inventory_service, repair_service
from ..validation import require_choice


repairs_bp = Blueprint("repairs", __name__, url_prefix="/api/repairs")


@repairs_bp.get("")
@json_errors("list repairs")
def list_repairs_route():
    query = ListQuery.from_args(
        request.args,
        status=lambda value, name: require_choice(value, name, REPAIR_STATUSES),
    )
    result = repair_service.list_repairs(
        q=query.q,
        page=query.page,
        per_page=query.per_page,
        **query.filters,
    )
    return jsonify(result), 200


@repairs_bp.get("/available-items")
@json_errors("list repairable items")
def available_items_route():
    query = ListQuery.from_args(request.args)
    return jsonify({"items": inventory_service.list_repairable_items(query.q)}), 200


@repairs_bp.post("")
@json_errors("create repair")
def create_repair_route():
    data = CreateRepairInput.from_payload(request.get_json(silent=True))
    repair = repair_service.create_case(data)
    return jsonify({"repair": repair_service.get_repair(repair.id)}), 201


@repairs_bp.get("/<int:repair_id>")
@json_errors("get repair")
def get_repair_route(repair_id: int):
    return jsonify({"repair": repair_service.get_repair(repair_id)}), 200


@repairs_bp.put("/<int:repair_id>")
@json_errors("update repair")
def update_repair_route(repair_id: int):
    """
    Update a repair case.

    Setting status to DONE releases the item for sale and posts the repair
    cost on the originating purchase (once).
    """
    data = UpdateRepairInput.from_payload(request.get_json(silent=True))
    repair = repair_service.update_case(repair_id, data)
    return jsonify({"repair": repair_service.get_repair(repair.id)}), 200


@repairs_bp.post("/<int:repair_id>/entries")
@json_errors("add repair entry")
def add_entry_route(repair_id: int):
    data = RepairEntryInput.from_payload(request.get_json(silent=True))
    repair = repair_service.add_entry(repair_id, data)
    return jsonify({"repair": repair_service.get_repair(repair.id)}), 201


@repairs_bp.put("/entries/<int:entry_id>")
@json_errors("update repair entry")
def update_entry_route(entry_id: int):
    data = UpdateRepairEntryInput.from_payload(request.get_json(silent=True))
    repair = repair_service.update_entry(entry_id, data)
    return jsonify({"repair": repair_service.get_repair(repair.id)}), 200
