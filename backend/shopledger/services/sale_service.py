# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Transaction Engine

WHY: Sales consume inventory the shop already owns. Each line resolves an
existing sellable item (by id or IMEI), marks it SOLD with a back-reference
to the sale, and the sale carries the same balance rules as a purchase.

DESIGN:
- Removing an item from a sale (or deleting the sale) returns it to
  READY_FOR_SALE, never IN_STOCK
- The one-active-sale-per-item rule is also a partial unique index, so a
  concurrent double sale surfaces as a ConflictError from atomic()
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, Sale, SaleItem
from ..schemas import UNSET, CreateSaleInput, PaymentInput, SaleLineInput, UpdateSaleInput
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from . import customer_service, inventory_service, ledger_service, repair_service
from .concurrency import atomic
from .pagination import paginate


# =============================================================================
# HELPERS
# =============================================================================

def get_active_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, is_active=True).first()
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _ensure_unique_lines(lines: list[SaleLineInput]) -> None:
    ids: set[int] = set()
    imeis: set[str] = set()
    for line in lines:
        if line.item_id is not None:
            if line.item_id in ids:
                raise ValidationError(f"Duplicate item_id in request: {line.item_id}")
            ids.add(line.item_id)
        if line.imei:
            if line.imei in imeis:
                raise ValidationError(f"Duplicate IMEI in request: {line.imei}")
            imeis.add(line.imei)


def _resolve_lines(lines: list[SaleLineInput]) -> list[tuple[SaleLineInput, InventoryItem]]:
    resolved = []
    seen: set[int] = set()
    for line in lines:
        item = inventory_service.resolve_item(line.item_id, line.imei)
        if item.id in seen:
            raise ValidationError(f"Inventory item {item.id} appears more than once in request")
        seen.add(item.id)
        resolved.append((line, item))
    return resolved


def _active_sale_items(sale: Sale) -> list[SaleItem]:
    return (
        db.session.query(SaleItem)
        .filter_by(sale_id=sale.id, is_active=True)
        .order_by(SaleItem.id.asc())
        .all()
    )


def _attach(sale: Sale, item: InventoryItem, line: SaleLineInput) -> SaleItem:
    inventory_service.mark_sold(item, sale)
    entry = SaleItem(
        sale_id=sale.id,
        item_id=item.id,
        sale_price_cents=line.sale_price_cents,
        notes=line.notes,
        is_active=True,
    )
    db.session.add(entry)
    return entry


def _detach(entry: SaleItem, now: datetime) -> None:
    entry.is_active = False
    entry.deleted_at = now
    inventory_service.release_from_sale(entry.item)


# =============================================================================
# CREATE
# =============================================================================

def create_sale(data: CreateSaleInput) -> Sale:
    """
    Sell one or more existing items.

    Raises:
        ValidationError: bad item reference, paid_now above total, missing customer
        NotFoundError: item or customer does not exist
        ConflictError: an item is already sold or not in a sellable status
    """
    _ensure_unique_lines(data.items)

    total = sum(line.sale_price_cents for line in data.items)
    paid_now, remaining = ledger_service.compute_balance(total, data.payment_type, data.paid_now_cents)

    with atomic():
        resolved = _resolve_lines(data.items)
        for _, item in resolved:
            inventory_service.assert_sellable(item)

        customer = customer_service.resolve_customer(data.customer_id, data.customer)
        ledger_service.ensure_customer_requirement(data.payment_type, customer, remaining)

        sale = Sale(
            sold_at=data.sold_at or utcnow(),
            customer_id=customer.id if customer else None,
            payment_method=data.payment_method,
            payment_type=data.payment_type,
            total_price_cents=total,
            paid_now_cents=paid_now,
            remaining_cents=remaining,
            notes=data.notes,
            is_active=True,
        )
        db.session.add(sale)
        db.session.flush()

        for line, item in resolved:
            _attach(sale, item, line)

        if paid_now > 0:
            ledger_service.post_activity(
                sale,
                paid_now,
                ledger_service.NOTE_INITIAL_SALE_PAYMENT,
                paid_at=sale.sold_at,
            )

    current_app.logger.info("Sale %s created with %s item(s)", sale.id, len(data.items))
    return sale


# =============================================================================
# PAYMENTS
# =============================================================================

def add_sale_payment(sale_id: int, data: PaymentInput) -> Sale:
    """Record a partial payment from the customer."""
    with atomic():
        sale = get_active_sale(sale_id)
        ledger_service.apply_payment(sale, data.amount_cents, data.notes, data.paid_at)
    return sale


# =============================================================================
# UPDATE
# =============================================================================

def _apply_items_update(sale: Sale, lines: list[SaleLineInput]) -> int:
    """
    Diff the payload against the sale's active items.

    Items already on the sale keep their SOLD state and only get price/notes
    updates; newly added items must be sellable; items no longer listed are
    detached and return to READY_FOR_SALE. Returns the new total.
    """
    _ensure_unique_lines(lines)
    existing = {entry.item_id: entry for entry in _active_sale_items(sale)}
    now = utcnow()

    targets = set()
    for line, item in _resolve_lines(lines):
        targets.add(item.id)
        entry = existing.get(item.id)
        if entry is not None:
            entry.sale_price_cents = line.sale_price_cents
            entry.notes = line.notes
            continue
        _attach(sale, item, line)

    for item_id, entry in existing.items():
        if item_id not in targets:
            _detach(entry, now)

    return sum(line.sale_price_cents for line in lines)


def _current_total(sale: Sale) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(SaleItem.sale_price_cents), 0))
        .filter(SaleItem.sale_id == sale.id, SaleItem.is_active.is_(True))
        .scalar()
    )
    return int(total or 0)


def update_sale(sale_id: int, data: UpdateSaleInput) -> Sale:
    with atomic():
        sale = get_active_sale(sale_id)

        if data.items:
            total = _apply_items_update(sale, data.items)
        else:
            total = _current_total(sale)

        customer = customer_service.resolve_customer_for_update(sale.customer_id, data.customer_id, data.customer)
        ledger_service.rebalance(
            sale,
            total,
            sale.payment_type if data.payment_type is UNSET else data.payment_type,
            None if data.paid_now_cents is UNSET else data.paid_now_cents,
            customer,
        )

        if data.sold_at is not UNSET:
            sale.sold_at = data.sold_at or utcnow()
        if data.payment_method is not UNSET:
            sale.payment_method = data.payment_method
        if data.notes is not UNSET:
            sale.notes = data.notes

    return sale


# =============================================================================
# DELETE
# =============================================================================

def cascade_deactivate(sale: Sale, now: datetime) -> list[int]:
    """
    Soft-delete a sale and everything hanging off it, in the caller's transaction.

    Activities, sale items and repairs on the sold items are deactivated;
    each item goes back to READY_FOR_SALE with its sale reference cleared.
    Returns the released item ids.
    """
    ledger_service.deactivate_activities(sale, now)

    entries = _active_sale_items(sale)
    item_ids = [entry.item_id for entry in entries]
    repair_service.deactivate_for_items(item_ids, now)

    for entry in entries:
        _detach(entry, now)

    # Items pointing at the sale without an active join row
    stray = (
        db.session.query(InventoryItem)
        .filter(InventoryItem.sale_id == sale.id)
        .all()
    )
    for item in stray:
        inventory_service.release_from_sale(item)
        item_ids.append(item.id)

    sale.is_active = False
    sale.deleted_at = now
    return item_ids


def delete_sale(sale_id: int) -> dict:
    with atomic():
        sale = get_active_sale(sale_id)
        released = cascade_deactivate(sale, utcnow())

    current_app.logger.info("Sale %s deleted; released item(s) %s", sale_id, released)
    return {"ok": True, "sale_id": sale_id, "released_item_ids": released}


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> dict:
    sale = get_active_sale(sale_id)
    data = sale.to_dict()
    data["customer"] = sale.customer.to_dict() if sale.customer else None
    data["items"] = [
        {**entry.to_dict(), "item": entry.item.to_dict()}
        for entry in _active_sale_items(sale)
    ]
    data["activities"] = [a.to_dict() for a in ledger_service.active_activities(sale)]
    return data


def _summary(sale: Sale) -> dict:
    entries = _active_sale_items(sale)
    data = sale.to_dict()
    data["customer"] = sale.customer.to_dict() if sale.customer else None
    data["item_count"] = len(entries)
    data["phone_label"] = entries[0].item.label if entries else None
    data["status"] = "PAID" if sale.remaining_cents == 0 else "OPEN"
    return data


def list_sales(
    customer_id: int | None = None,
    payment_type: str | None = None,
    date_from=None,
    date_to=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Sale).filter(Sale.is_active.is_(True))
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if payment_type:
        query = query.filter(Sale.payment_type == payment_type)
    if date_from is not None:
        query = query.filter(Sale.sold_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.sold_at <= date_to)
    query = query.order_by(Sale.sold_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page, _summary)


def list_available_items(q: str | None = None) -> list[dict]:
    """Items that can be put on a sale right now."""
    return inventory_service.list_sellable_items(q)
