# Overview: Service-layer operations for the inventory item registry; owns the item state machine.

"""
Inventory Item Registry

WHY: Each phone moves through IN_STOCK -> IN_REPAIR -> READY_FOR_SALE -> SOLD
(plus RETURNED), and the purchase, sale and repair engines all need the same
guards before they touch an item. Centralizing them here keeps the status
and the sale reference consistent: status == SOLD iff sale_id is set.

DESIGN:
- Helpers without a commit run in the caller's transaction
- Standalone CRUD (create_item/update_item/deactivate_item) commits via atomic()
- Every status change goes through transition(); illegal edges are Conflicts
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import InventoryItem, PurchaseItem, Repair, Sale
from ..models.inventory import (
    SELLABLE_STATUSES,
    STATUS_IN_REPAIR,
    STATUS_IN_STOCK,
    STATUS_READY_FOR_SALE,
    STATUS_RETURNED,
    STATUS_SOLD,
)
from ..money import format_cents
from ..schemas import UNSET, CreateItemInput, UpdateItemInput
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import atomic
from .pagination import paginate


# (from, to) pairs; anything else fails with ConflictError
ALLOWED_TRANSITIONS = {
    (STATUS_IN_STOCK, STATUS_IN_REPAIR),
    (STATUS_IN_STOCK, STATUS_READY_FOR_SALE),
    (STATUS_READY_FOR_SALE, STATUS_IN_REPAIR),
    (STATUS_IN_REPAIR, STATUS_READY_FOR_SALE),
    (STATUS_IN_STOCK, STATUS_SOLD),
    (STATUS_READY_FOR_SALE, STATUS_SOLD),
    (STATUS_SOLD, STATUS_READY_FOR_SALE),
    (STATUS_IN_STOCK, STATUS_RETURNED),
    (STATUS_READY_FOR_SALE, STATUS_RETURNED),
}

# Edges reachable through update_item; SOLD and IN_REPAIR are owned by the sale
# and repair engines
MANUAL_TRANSITIONS = {
    (STATUS_IN_STOCK, STATUS_READY_FOR_SALE),
    (STATUS_IN_STOCK, STATUS_RETURNED),
    (STATUS_READY_FOR_SALE, STATUS_RETURNED),
}


# =============================================================================
# LOOKUPS / GUARDS
# =============================================================================

def get_active_item(item_id: int) -> InventoryItem:
    item = db.session.query(InventoryItem).filter_by(id=item_id, is_active=True).first()
    if not item:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def find_active_by_imei(imei: str) -> InventoryItem | None:
    return db.session.query(InventoryItem).filter_by(imei=imei.strip(), is_active=True).first()


def ensure_imei_unique(imei: str, exclude_item_id: int | None = None) -> None:
    existing = find_active_by_imei(imei)
    if existing and existing.id != exclude_item_id:
        raise ConflictError(f"Inventory item with IMEI {imei.strip()} already exists")


def resolve_item(item_id: int | None = None, imei: str | None = None) -> InventoryItem:
    """
    Resolve an active item by id, IMEI, or both.

    When both are supplied they must point at the same item.
    """
    if item_id is None and not imei:
        raise ValidationError("Each item reference must include item_id or imei")

    if item_id is not None:
        item = get_active_item(item_id)
        if imei and item.imei != imei.strip():
            raise ValidationError(f"item_id {item_id} does not match IMEI {imei.strip()}")
        return item

    item = find_active_by_imei(imei)
    if not item:
        raise NotFoundError(f"Inventory item with IMEI {imei.strip()} not found")
    return item


def assert_sellable(item: InventoryItem) -> None:
    if item.sale_id is not None or item.status == STATUS_SOLD:
        raise ConflictError(f"Inventory item {item.id} is already sold")
    if item.status not in SELLABLE_STATUSES:
        raise ConflictError(f"Inventory item {item.id} is not sellable (status {item.status})")


def assert_repairable(item: InventoryItem) -> None:
    if item.status == STATUS_SOLD:
        raise ConflictError("Sold item cannot be repaired")
    if item.status == STATUS_IN_REPAIR:
        raise ConflictError("Item is already in repair")
    if item.status not in SELLABLE_STATUSES:
        raise ConflictError(f"Item with status {item.status} cannot be repaired")


# =============================================================================
# STATE MACHINE
# =============================================================================

def transition(item: InventoryItem, new_status: str, sale: Sale | None = None) -> InventoryItem:
    """
    Move an item to new_status if the edge is allowed.

    Entering SOLD requires the sale; leaving SOLD clears the sale reference.
    A same-state move is a no-op.
    """
    if item.status == new_status:
        return item

    if (item.status, new_status) not in ALLOWED_TRANSITIONS:
        raise ConflictError(
            f"Inventory item {item.id} cannot move from {item.status} to {new_status}"
        )

    if new_status == STATUS_SOLD:
        if sale is None:
            raise ValueError("transition to SOLD requires a sale")
        item.sale = sale
        item.sale_id = sale.id
    elif item.status == STATUS_SOLD:
        item.sale = None
        item.sale_id = None

    item.status = new_status
    return item


def mark_sold(item: InventoryItem, sale: Sale) -> InventoryItem:
    assert_sellable(item)
    return transition(item, STATUS_SOLD, sale=sale)


def release_from_sale(item: InventoryItem) -> InventoryItem:
    """Detach an item from its sale. It returns to READY_FOR_SALE, never IN_STOCK."""
    if item.status == STATUS_SOLD:
        return transition(item, STATUS_READY_FOR_SALE)
    item.sale = None
    item.sale_id = None
    return item


def deactivate(item: InventoryItem, now) -> None:
    item.is_active = False
    item.deleted_at = now


# =============================================================================
# REGISTRATION
# =============================================================================

def register_item(
    *,
    imei: str,
    brand: str,
    model: str,
    condition: str,
    status: str,
    serial_number: str | None = None,
    storage: str | None = None,
    color: str | None = None,
    known_issues: str | None = None,
    expected_sale_price_cents: int | None = None,
    purchase_id: int | None = None,
) -> InventoryItem:
    """Create a new item row in the caller's transaction (IMEI checked first)."""
    ensure_imei_unique(imei)
    item = InventoryItem(
        imei=imei.strip(),
        serial_number=serial_number,
        brand=brand,
        model=model,
        storage=storage,
        color=color,
        condition=condition,
        known_issues=known_issues,
        expected_sale_price_cents=expected_sale_price_cents,
        status=status,
        purchase_id=purchase_id,
        is_active=True,
    )
    db.session.add(item)
    db.session.flush()
    return item


def create_item(data: CreateItemInput) -> InventoryItem:
    """Standalone intake of an item that did not come through a purchase."""
    with atomic():
        item = register_item(
            imei=data.imei,
            brand=data.brand,
            model=data.model,
            condition=data.condition,
            status=data.status,
            serial_number=data.serial_number,
            storage=data.storage,
            color=data.color,
            known_issues=data.known_issues,
            expected_sale_price_cents=data.expected_sale_price_cents,
        )
    return item


def update_item(item_id: int, data: UpdateItemInput) -> InventoryItem:
    with atomic():
        item = get_active_item(item_id)

        if data.imei is not UNSET and data.imei != item.imei:
            ensure_imei_unique(data.imei, exclude_item_id=item.id)
            item.imei = data.imei

        for name in ("serial_number", "brand", "model", "storage", "color", "condition", "known_issues"):
            value = getattr(data, name)
            if value is not UNSET:
                setattr(item, name, value)

        if data.expected_sale_price_cents is not UNSET:
            item.expected_sale_price_cents = data.expected_sale_price_cents

        if data.status is not UNSET and data.status != item.status:
            if item.status == STATUS_SOLD or item.sale_id is not None:
                raise ConflictError(f"Item {item.id} is sold; delete or edit the sale to release it")
            if item.status == STATUS_IN_REPAIR:
                raise ConflictError(f"Item {item.id} is in repair; complete the repair case to release it")
            if (item.status, data.status) not in MANUAL_TRANSITIONS:
                raise ConflictError(f"Item {item.id} cannot move from {item.status} to {data.status}")
            transition(item, data.status)

    return item


def deactivate_item(item_id: int) -> None:
    with atomic():
        item = get_active_item(item_id)
        if item.status == STATUS_SOLD or item.sale_id is not None:
            raise ConflictError(f"Cannot delete item {item.id} because it is already sold")
        if item.status == STATUS_IN_REPAIR:
            raise ConflictError(f"Cannot delete item {item.id} while it is in repair")
        deactivate(item, utcnow())
        current_app.logger.info("Inventory item %s deactivated", item.id)


# =============================================================================
# QUERIES
# =============================================================================

def _search(query, q: str | None):
    if not q:
        return query
    pattern = f"%{q.strip()}%"
    return query.filter(
        or_(
            InventoryItem.imei.ilike(pattern),
            InventoryItem.brand.ilike(pattern),
            InventoryItem.model.ilike(pattern),
        )
    )


def _cost_columns():
    purchase_cost = (
        db.session.query(func.coalesce(func.max(PurchaseItem.purchase_price_cents), 0))
        .filter(PurchaseItem.item_id == InventoryItem.id, PurchaseItem.is_active.is_(True))
        .correlate(InventoryItem)
        .scalar_subquery()
    )
    repair_cost = (
        db.session.query(func.coalesce(func.sum(Repair.cost_total_cents), 0))
        .filter(Repair.item_id == InventoryItem.id, Repair.is_active.is_(True))
        .correlate(InventoryItem)
        .scalar_subquery()
    )
    return purchase_cost.label("purchase_cost_cents"), repair_cost.label("repair_cost_cents")


def _list_row(row) -> dict:
    item, purchase_cost, repair_cost = row
    data = item.to_dict()
    data["item_name"] = item.label
    data["purchase_cost"] = format_cents(purchase_cost)
    data["repair_cost"] = format_cents(repair_cost)
    data["cost"] = format_cents(purchase_cost + repair_cost)
    return data


def list_items(
    q: str | None = None,
    status: str | None = None,
    condition: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Paginated stock listing (active, unsold items) with purchase and repair cost.
    """
    purchase_cost, repair_cost = _cost_columns()
    query = (
        db.session.query(InventoryItem, purchase_cost, repair_cost)
        .filter(InventoryItem.is_active.is_(True), InventoryItem.status != STATUS_SOLD)
    )
    query = _search(query, q)
    if status:
        query = query.filter(InventoryItem.status == status)
    if condition:
        query = query.filter(InventoryItem.condition == condition)

    query = query.order_by(InventoryItem.id.desc())
    return paginate(query, page, per_page, _list_row)


def list_sellable_items(q: str | None = None, limit: int = 50) -> list[dict]:
    query = db.session.query(InventoryItem).filter(
        InventoryItem.is_active.is_(True),
        InventoryItem.sale_id.is_(None),
        InventoryItem.status.in_(sorted(SELLABLE_STATUSES)),
    )
    items = _search(query, q).order_by(InventoryItem.id.desc()).limit(limit).all()
    return [item.to_dict() for item in items]


def list_repairable_items(q: str | None = None, limit: int = 50) -> list[dict]:
    # Same status set as sellable: repairable means not SOLD and not already IN_REPAIR
    return list_sellable_items(q, limit)
