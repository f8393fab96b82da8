# Overview: Service-layer operations for repair cases; encapsulates business logic and database work.

"""
Repair Case Engine

WHY: Repairs lock a device out of the sales floor (IN_REPAIR) until the work
is done, and their cost has to show up against the purchase that brought the
device in.

STATE MACHINE: PENDING -> DONE. DONE may be set back to PENDING; that re-locks
the item to IN_REPAIR unless it has been sold in the meantime.

DESIGN:
- Cost fields on the case are derived: cost_total = sum of active entries,
  parts/labor are NULL until the first entry exists
- Completion posts one informational PurchaseActivity (REPAIR_COST) on the
  originating purchase. It does not touch total_price/remaining.
- Reopening appends a REPAIR_REVERSAL row; posted activities are never edited
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import InventoryItem, Purchase, PurchaseActivity, PurchaseItem, Repair, RepairEntry
from ..models.inventory import STATUS_IN_REPAIR, STATUS_READY_FOR_SALE, STATUS_SOLD
from ..models.repairs import REPAIR_STATUS_DONE, REPAIR_STATUS_PENDING
from ..money import format_cents
from ..schemas import (
    UNSET,
    CreateRepairInput,
    RepairEntryInput,
    UpdateRepairEntryInput,
    UpdateRepairInput,
)
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from . import inventory_service, ledger_service, user_service
from .concurrency import atomic
from .pagination import paginate


# =============================================================================
# LOOKUPS
# =============================================================================

def get_active_repair(repair_id: int) -> Repair:
    repair = db.session.query(Repair).filter_by(id=repair_id, is_active=True).first()
    if not repair:
        raise NotFoundError(f"Repair {repair_id} not found")
    return repair


def get_active_entry(entry_id: int) -> RepairEntry:
    entry = db.session.query(RepairEntry).filter_by(id=entry_id, is_active=True).first()
    if not entry:
        raise NotFoundError(f"Repair entry {entry_id} not found")
    return entry


def active_entries(repair: Repair) -> list[RepairEntry]:
    return (
        db.session.query(RepairEntry)
        .filter_by(repair_id=repair.id, is_active=True)
        .order_by(RepairEntry.entry_at.asc(), RepairEntry.id.asc())
        .all()
    )


# =============================================================================
# COSTS
# =============================================================================

def recalculate_costs(repair: Repair) -> Repair:
    """
    Recompute cost_total/parts_cost/labor_cost from active entries.

    Unset parts/labor on an entry count as 0; the aggregate is NULL only when
    the case has no entries.
    """
    db.session.flush()
    entries = active_entries(repair)

    repair.cost_total_cents = sum(e.cost_total_cents or 0 for e in entries)
    if entries:
        repair.parts_cost_cents = sum(e.parts_cost_cents or 0 for e in entries)
        repair.labor_cost_cents = sum(e.labor_cost_cents or 0 for e in entries)
    else:
        repair.parts_cost_cents = None
        repair.labor_cost_cents = None
    return repair


def _add_entry(
    repair: Repair,
    *,
    description: str,
    cost_total_cents: int,
    entry_at: datetime | None = None,
    parts_cost_cents: int | None = None,
    labor_cost_cents: int | None = None,
    notes: str | None = None,
) -> RepairEntry:
    entry = RepairEntry(
        repair_id=repair.id,
        entry_at=entry_at or utcnow(),
        description=description,
        cost_total_cents=cost_total_cents,
        parts_cost_cents=parts_cost_cents,
        labor_cost_cents=labor_cost_cents,
        notes=notes,
        is_active=True,
    )
    db.session.add(entry)
    return entry


# =============================================================================
# CASES
# =============================================================================

def create_case(data: CreateRepairInput) -> Repair:
    """
    Open a repair case on a repairable item.

    A first entry is recorded when an initial cost is given, and the item
    moves to IN_REPAIR.
    """
    with atomic():
        item = inventory_service.resolve_item(data.item_id, data.imei)
        inventory_service.assert_repairable(item)

        if data.technician_id is not None:
            user_service.get_active_user(data.technician_id)

        repaired_at = data.repaired_at or utcnow()
        repair = Repair(
            item_id=item.id,
            repaired_at=repaired_at,
            description=data.description,
            status=REPAIR_STATUS_PENDING,
            cost_total_cents=data.cost_total_cents,
            parts_cost_cents=data.parts_cost_cents,
            labor_cost_cents=data.labor_cost_cents,
            technician_id=data.technician_id,
            notes=data.notes,
            is_active=True,
        )
        db.session.add(repair)
        db.session.flush()

        if data.cost_total_cents > 0:
            _add_entry(
                repair,
                description=data.description,
                cost_total_cents=data.cost_total_cents,
                entry_at=repaired_at,
                parts_cost_cents=data.parts_cost_cents,
                labor_cost_cents=data.labor_cost_cents,
                notes=data.notes,
            )

        inventory_service.transition(item, STATUS_IN_REPAIR)

    return repair


def open_auto_case(item: InventoryItem, purchase: Purchase) -> Repair:
    """
    Repair case for an item that enters stock already IN_REPAIR (broken intake).

    Runs in the purchase's transaction; the item status is already set.
    """
    repair = Repair(
        item_id=item.id,
        repaired_at=purchase.purchased_at,
        description=item.known_issues or f"{item.brand} {item.model} requires inspection/repair",
        status=REPAIR_STATUS_PENDING,
        cost_total_cents=0,
        parts_cost_cents=None,
        labor_cost_cents=None,
        notes=f"Auto-created from purchase #{purchase.id}",
        is_active=True,
    )
    db.session.add(repair)
    db.session.flush()
    return repair


def add_entry(repair_id: int, data: RepairEntryInput) -> Repair:
    with atomic():
        repair = get_active_repair(repair_id)
        _add_entry(
            repair,
            description=data.description,
            cost_total_cents=data.cost_total_cents,
            entry_at=data.entry_at,
            parts_cost_cents=data.parts_cost_cents,
            labor_cost_cents=data.labor_cost_cents,
            notes=data.notes,
        )
        recalculate_costs(repair)
    return repair


def update_entry(entry_id: int, data: UpdateRepairEntryInput) -> Repair:
    with atomic():
        entry = get_active_entry(entry_id)
        repair = get_active_repair(entry.repair_id)

        for name in ("description", "entry_at", "cost_total_cents", "parts_cost_cents", "labor_cost_cents", "notes"):
            value = getattr(data, name)
            if value is not UNSET:
                setattr(entry, name, value)
        if entry.entry_at is None:
            entry.entry_at = utcnow()

        recalculate_costs(repair)
    return repair


def _post_repair_cost(repair: Repair, item: InventoryItem) -> None:
    """Informational activity on the purchase the item came from, if any."""
    link = (
        db.session.query(PurchaseItem)
        .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
        .filter(
            PurchaseItem.item_id == item.id,
            PurchaseItem.is_active.is_(True),
            Purchase.is_active.is_(True),
        )
        .first()
    )
    if link is None:
        return

    ledger_service.post_activity(
        link.purchase,
        repair.cost_total_cents,
        f"Repaired: total cost {format_cents(repair.cost_total_cents)}",
        activity_type=ledger_service.ACTIVITY_REPAIR_COST,
        repair_id=repair.id,
    )
    current_app.logger.info(
        "Repair %s completed; cost %s posted to purchase %s",
        repair.id, format_cents(repair.cost_total_cents), link.purchase_id,
    )


def _reverse_repair_cost(repair: Repair) -> None:
    """
    Reopening a case appends a negative REPAIR_REVERSAL row for whatever cost
    is still posted; completing again posts a fresh REPAIR_COST.
    """
    posted = (
        db.session.query(PurchaseActivity.purchase_id, func.sum(PurchaseActivity.amount_cents))
        .filter(
            PurchaseActivity.repair_id == repair.id,
            PurchaseActivity.activity_type.in_(
                [ledger_service.ACTIVITY_REPAIR_COST, ledger_service.ACTIVITY_REPAIR_REVERSAL]
            ),
            PurchaseActivity.is_active.is_(True),
        )
        .group_by(PurchaseActivity.purchase_id)
        .all()
    )
    for purchase_id, net_cents in posted:
        if not net_cents:
            continue
        purchase = db.session.get(Purchase, purchase_id)
        ledger_service.post_activity(
            purchase,
            -net_cents,
            f"Repair reopened: cost {format_cents(net_cents)} reversed",
            activity_type=ledger_service.ACTIVITY_REPAIR_REVERSAL,
            repair_id=repair.id,
        )


def update_case(repair_id: int, data: UpdateRepairInput) -> Repair:
    """
    Edit a repair case.

    Item effects only happen on a status edge:
    - PENDING -> DONE: item goes READY_FOR_SALE (unless SOLD) and the cost is
      posted once on the originating purchase
    - DONE -> PENDING: item goes back IN_REPAIR (unless SOLD) and the
      posted cost is reversed by an appended entry
    """
    with atomic():
        repair = get_active_repair(repair_id)
        previous_status = repair.status

        if data.description is not UNSET:
            repair.description = data.description
        if data.repaired_at is not UNSET:
            repair.repaired_at = data.repaired_at or utcnow()
        if data.notes is not UNSET:
            repair.notes = data.notes

        if data.technician_id is not UNSET:
            if data.technician_id is not None:
                user_service.get_active_user(data.technician_id)
            repair.technician_id = data.technician_id

        if data.touches_costs:
            if active_entries(repair):
                raise ValidationError("Repair costs are derived from entries; update the entries instead")
            if data.cost_total_cents is not UNSET:
                repair.cost_total_cents = data.cost_total_cents
            if data.parts_cost_cents is not UNSET:
                repair.parts_cost_cents = data.parts_cost_cents
            if data.labor_cost_cents is not UNSET:
                repair.labor_cost_cents = data.labor_cost_cents

        if data.status is not UNSET:
            repair.status = data.status

        if repair.status != previous_status:
            item = repair.item
            if repair.status == REPAIR_STATUS_DONE:
                if item.status != STATUS_SOLD:
                    inventory_service.transition(item, STATUS_READY_FOR_SALE)
                _post_repair_cost(repair, item)
            else:
                if item.status != STATUS_SOLD:
                    inventory_service.transition(item, STATUS_IN_REPAIR)
                _reverse_repair_cost(repair)

    return repair


def deactivate_for_items(item_ids: list[int], now: datetime) -> int:
    """Soft-delete every active repair (and its entries) on the given items."""
    if not item_ids:
        return 0
    repairs = (
        db.session.query(Repair)
        .filter(Repair.item_id.in_(item_ids), Repair.is_active.is_(True))
        .all()
    )
    for repair in repairs:
        for entry in active_entries(repair):
            entry.is_active = False
            entry.deleted_at = now
        repair.is_active = False
        repair.deleted_at = now
    return len(repairs)


# =============================================================================
# QUERIES
# =============================================================================

def _summary(row) -> dict:
    repair, item = row
    data = repair.to_dict()
    data["item"] = {
        "id": item.id,
        "imei": item.imei,
        "brand": item.brand,
        "model": item.model,
        "status": item.status,
    }
    return data


def get_repair(repair_id: int) -> dict:
    repair = get_active_repair(repair_id)
    data = repair.to_dict()
    data["item"] = repair.item.to_dict()
    data["technician"] = repair.technician.to_dict() if repair.technician else None
    data["entries"] = [entry.to_dict() for entry in active_entries(repair)]
    return data


def list_repairs(
    status: str | None = None,
    q: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = (
        db.session.query(Repair, InventoryItem)
        .join(InventoryItem, InventoryItem.id == Repair.item_id)
        .filter(Repair.is_active.is_(True))
    )
    if status:
        query = query.filter(Repair.status == status)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(
            or_(
                InventoryItem.imei.ilike(pattern),
                InventoryItem.brand.ilike(pattern),
                InventoryItem.model.ilike(pattern),
                Repair.description.ilike(pattern),
            )
        )
    query = query.order_by(Repair.repaired_at.desc(), Repair.id.desc())
    return paginate(query, page, per_page, _summary)
