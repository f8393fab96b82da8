# Overview: Service-layer operations for purchases; encapsulates business logic and database work.

"""
Purchase Transaction Engine

WHY: A purchase is how phones enter the shop. One request registers 1..N new
inventory items, prices them, records what was paid on the spot and what the
shop still owes, and opens repair cases for devices bought broken.

DESIGN PRINCIPLES:
- One transaction per operation: a failure anywhere leaves no purchase, no
  items, no repairs and no activities behind
- total_price = paid_now + remaining, remaining >= 0, always
- An open balance (or PAY_LATER) requires a customer
- Delete is a cascading soft delete that reaches the sales the items ended
  up in; rows stay for audit with is_active/deleted_at flipped
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, Purchase, PurchaseItem, Sale, SaleItem
from ..models.inventory import CONDITION_BROKEN, STATUS_IN_REPAIR, STATUS_IN_STOCK, STATUS_SOLD
from ..schemas import UNSET, CreatePurchaseInput, PaymentInput, PurchaseLineInput, UpdatePurchaseInput
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import customer_service, inventory_service, ledger_service, repair_service, sale_service
from .concurrency import atomic
from .pagination import paginate


# =============================================================================
# HELPERS
# =============================================================================

def get_active_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.query(Purchase).filter_by(id=purchase_id, is_active=True).first()
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def resolve_initial_status(initial_status: str | None, condition: str) -> str:
    """Explicit initial status wins; broken devices default to IN_REPAIR."""
    if initial_status in (STATUS_IN_STOCK, STATUS_IN_REPAIR):
        return initial_status
    if condition == CONDITION_BROKEN:
        return STATUS_IN_REPAIR
    return STATUS_IN_STOCK


def _ensure_unique_lines(lines: list[PurchaseLineInput]) -> None:
    seen_imei: set[str] = set()
    seen_ids: set[int] = set()
    for line in lines:
        if line.imei in seen_imei:
            raise ConflictError(f"Duplicate IMEI in request: {line.imei}")
        seen_imei.add(line.imei)
        if line.item_id is not None:
            if line.item_id in seen_ids:
                raise ValidationError(f"Duplicate item_id in request: {line.item_id}")
            seen_ids.add(line.item_id)


def _register_line(purchase: Purchase, line: PurchaseLineInput) -> InventoryItem:
    """New item + join row; opens a repair case when the item starts IN_REPAIR."""
    item = inventory_service.register_item(
        imei=line.imei,
        brand=line.brand,
        model=line.model,
        condition=line.condition,
        status=resolve_initial_status(line.initial_status, line.condition),
        serial_number=line.serial_number,
        storage=line.storage,
        color=line.color,
        known_issues=line.known_issues,
        expected_sale_price_cents=line.expected_sale_price_cents,
        purchase_id=purchase.id,
    )
    db.session.add(PurchaseItem(
        purchase_id=purchase.id,
        item_id=item.id,
        purchase_price_cents=line.purchase_price_cents,
        notes=line.notes or line.known_issues,
        is_active=True,
    ))
    if item.status == STATUS_IN_REPAIR:
        repair_service.open_auto_case(item, purchase)
    return item


def _active_purchase_items(purchase: Purchase) -> list[PurchaseItem]:
    return (
        db.session.query(PurchaseItem)
        .filter_by(purchase_id=purchase.id, is_active=True)
        .order_by(PurchaseItem.id.asc())
        .all()
    )


def _is_sold(item: InventoryItem) -> bool:
    return item.sale_id is not None or item.status == STATUS_SOLD


# =============================================================================
# CREATE
# =============================================================================

def create_purchase(data: CreatePurchaseInput) -> Purchase:
    """
    Register a purchase with its items in one transaction.

    Raises:
        ValidationError: paid_now above total, or missing customer for an open balance
        ConflictError: IMEI repeated in the request or already in stock
        NotFoundError: customer_id does not exist
    """
    _ensure_unique_lines(data.items)

    total = sum(line.purchase_price_cents for line in data.items)
    paid_now, remaining = ledger_service.compute_balance(total, data.payment_type, data.paid_now_cents)

    with atomic():
        for line in data.items:
            inventory_service.ensure_imei_unique(line.imei)

        customer = customer_service.resolve_customer(data.customer_id, data.customer)
        ledger_service.ensure_customer_requirement(data.payment_type, customer, remaining)

        purchase = Purchase(
            purchased_at=data.purchased_at or utcnow(),
            customer_id=customer.id if customer else None,
            payment_method=data.payment_method,
            payment_type=data.payment_type,
            total_price_cents=total,
            paid_now_cents=paid_now,
            remaining_cents=remaining,
            notes=data.notes,
            is_active=True,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in data.items:
            _register_line(purchase, line)

        if paid_now > 0:
            ledger_service.post_activity(
                purchase,
                paid_now,
                ledger_service.NOTE_FULLY_PAID if remaining == 0 else ledger_service.NOTE_INITIAL_PARTIAL,
                paid_at=purchase.purchased_at,
                activity_type=ledger_service.ACTIVITY_PAYMENT,
            )

    current_app.logger.info("Purchase %s created with %s item(s)", purchase.id, len(data.items))
    return purchase


# =============================================================================
# PAYMENTS
# =============================================================================

def add_purchase_payment(purchase_id: int, data: PaymentInput) -> Purchase:
    """Pay down what the shop still owes on a purchase."""
    with atomic():
        purchase = get_active_purchase(purchase_id)
        ledger_service.apply_payment(purchase, data.amount_cents, data.notes, data.paid_at)
    return purchase


# =============================================================================
# UPDATE
# =============================================================================

def _apply_items_update(purchase: Purchase, lines: list[PurchaseLineInput]) -> int:
    """
    Diff the payload against the purchase's active items by item_id.

    Matched items are edited in place, unmatched existing items are
    deactivated, entries without item_id are registered as new items.
    Sold items can be neither edited nor removed. Returns the new total.
    """
    _ensure_unique_lines(lines)

    existing = {entry.item_id: entry for entry in _active_purchase_items(purchase)}
    kept: set[int] = set()
    now = utcnow()

    # Pass 1: validate edits and removals before anything is written
    for line in lines:
        if line.item_id is None:
            continue
        entry = existing.get(line.item_id)
        if entry is None:
            raise ValidationError(f"item_id {line.item_id} does not belong to purchase #{purchase.id}")
        if _is_sold(entry.item):
            raise ConflictError(f"Cannot edit item {entry.item_id} because it is already sold")
        kept.add(entry.item_id)

    removed = [entry for item_id, entry in existing.items() if item_id not in kept]
    for entry in removed:
        if _is_sold(entry.item):
            raise ConflictError(f"Cannot remove item {entry.item_id} because it is already sold")

    # Pass 2: removals first so a re-entered IMEI is free again
    for entry in removed:
        entry.is_active = False
        entry.deleted_at = now
        repair_service.deactivate_for_items([entry.item_id], now)
        inventory_service.deactivate(entry.item, now)
    db.session.flush()

    for line in lines:
        if line.item_id is None:
            _register_line(purchase, line)
            continue

        entry = existing[line.item_id]
        item = entry.item
        if line.imei != item.imei:
            inventory_service.ensure_imei_unique(line.imei, exclude_item_id=item.id)
            item.imei = line.imei

        item.brand = line.brand
        item.model = line.model
        item.condition = line.condition
        item.serial_number = line.serial_number
        item.storage = line.storage
        item.color = line.color
        item.known_issues = line.known_issues
        if line.expected_sale_price_cents is not None:
            item.expected_sale_price_cents = line.expected_sale_price_cents

        # Existing items only move through the state machine; IN_REPAIR re-opens a case
        if line.initial_status == STATUS_IN_REPAIR and item.status != STATUS_IN_REPAIR:
            inventory_service.assert_repairable(item)
            inventory_service.transition(item, STATUS_IN_REPAIR)
            repair_service.open_auto_case(item, purchase)

        entry.purchase_price_cents = line.purchase_price_cents
        entry.notes = line.notes or line.known_issues or entry.notes

    return sum(line.purchase_price_cents for line in lines)


def _current_total(purchase: Purchase) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(PurchaseItem.purchase_price_cents), 0))
        .filter(PurchaseItem.purchase_id == purchase.id, PurchaseItem.is_active.is_(True))
        .scalar()
    )
    return int(total or 0)


def update_purchase(purchase_id: int, data: UpdatePurchaseInput) -> Purchase:
    """
    Edit a purchase and optionally its item set, then recompute the balance
    with the same invariants as create (see ledger_service.rebalance).
    """
    with atomic():
        purchase = get_active_purchase(purchase_id)

        if data.items:
            total = _apply_items_update(purchase, data.items)
        else:
            total = _current_total(purchase)

        customer = customer_service.resolve_customer_for_update(purchase.customer_id, data.customer_id, data.customer)
        ledger_service.rebalance(
            purchase,
            total,
            purchase.payment_type if data.payment_type is UNSET else data.payment_type,
            None if data.paid_now_cents is UNSET else data.paid_now_cents,
            customer,
        )

        if data.purchased_at is not UNSET:
            purchase.purchased_at = data.purchased_at or utcnow()
        if data.payment_method is not UNSET:
            purchase.payment_method = data.payment_method
        if data.notes is not UNSET:
            purchase.notes = data.notes

    return purchase


# =============================================================================
# DELETE
# =============================================================================

def delete_purchase(purchase_id: int) -> dict:
    """
    Cascading soft delete, in dependency order:
    sales reached through the items -> repairs -> items -> activities/join rows -> purchase.
    """
    with atomic():
        purchase = get_active_purchase(purchase_id)
        now = utcnow()

        entries = _active_purchase_items(purchase)
        item_ids = sorted({entry.item_id for entry in entries})
        item_ids += [
            item.id
            for item in db.session.query(InventoryItem)
            .filter(InventoryItem.purchase_id == purchase.id, InventoryItem.is_active.is_(True))
            if item.id not in item_ids
        ]

        sale_ids = set()
        if item_ids:
            sale_ids.update(
                sale_id for (sale_id,) in db.session.query(SaleItem.sale_id)
                .filter(SaleItem.item_id.in_(item_ids), SaleItem.is_active.is_(True))
            )
            sale_ids.update(
                sale_id for (sale_id,) in db.session.query(InventoryItem.sale_id)
                .filter(InventoryItem.id.in_(item_ids), InventoryItem.sale_id.isnot(None))
            )

        sales = (
            db.session.query(Sale).filter(Sale.id.in_(sale_ids), Sale.is_active.is_(True)).all()
            if sale_ids else []
        )
        for sale in sales:
            sale_service.cascade_deactivate(sale, now)

        repairs = repair_service.deactivate_for_items(item_ids, now)

        items = (
            db.session.query(InventoryItem).filter(InventoryItem.id.in_(item_ids)).all()
            if item_ids else []
        )
        for item in items:
            inventory_service.deactivate(item, now)

        activities = ledger_service.deactivate_activities(purchase, now)
        for entry in entries:
            entry.is_active = False
            entry.deleted_at = now

        purchase.is_active = False
        purchase.deleted_at = now

    current_app.logger.info(
        "Purchase %s deleted: %s item(s), %s sale(s), %s repair(s), %s activity row(s)",
        purchase_id, len(items), len(sales), repairs, activities,
    )
    return {
        "ok": True,
        "purchase_id": purchase_id,
        "items": len(items),
        "sales": [sale.id for sale in sales],
        "repairs": repairs,
        "activities": activities,
    }


# =============================================================================
# QUERIES
# =============================================================================

def get_purchase(purchase_id: int) -> dict:
    purchase = get_active_purchase(purchase_id)
    data = purchase.to_dict()
    data["customer"] = purchase.customer.to_dict() if purchase.customer else None
    data["items"] = [
        {**entry.to_dict(), "item": entry.item.to_dict()}
        for entry in _active_purchase_items(purchase)
    ]
    data["activities"] = [a.to_dict() for a in ledger_service.active_activities(purchase)]
    return data


def _summary(purchase: Purchase) -> dict:
    entries = _active_purchase_items(purchase)
    data = purchase.to_dict()
    data["customer"] = purchase.customer.to_dict() if purchase.customer else None
    data["item_count"] = len(entries)
    data["phone_label"] = entries[0].item.label if entries else None
    data["status"] = "PAID" if purchase.remaining_cents == 0 else "OPEN"
    return data


def list_purchases(
    customer_id: int | None = None,
    payment_type: str | None = None,
    date_from=None,
    date_to=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Purchase).filter(Purchase.is_active.is_(True))
    if customer_id is not None:
        query = query.filter(Purchase.customer_id == customer_id)
    if payment_type:
        query = query.filter(Purchase.payment_type == payment_type)
    if date_from is not None:
        query = query.filter(Purchase.purchased_at >= date_from)
    if date_to is not None:
        query = query.filter(Purchase.purchased_at <= date_to)
    query = query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
    return paginate(query, page, per_page, _summary)
