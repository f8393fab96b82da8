# Overview: Service-layer operations for customer resolution and balances.

"""
Customer Ledger Helper

Purchases and sales with an open balance need a counterparty. Customers are
resolved by id or upserted by phone number from inline contact data. Nothing
here commits: every function runs inside the calling engine's transaction.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Purchase, Sale
from ..money import format_cents
from ..schemas import UNSET, CustomerInput
from ..validation import NotFoundError, ValidationError


def ensure_customer(
    phone_number: str | None,
    full_name: str | None = None,
    address: str | None = None,
    passport_id: str | None = None,
    notes: str | None = None,
) -> Customer:
    """
    Idempotent upsert keyed by phone number.

    - An inactive match is reactivated
    - Blank optional fields never overwrite stored values
    - full_name falls back to the phone number for new customers
    """
    phone = (phone_number or "").strip()
    if not phone:
        raise ValidationError("customer.phone_number is required")

    customer = db.session.query(Customer).filter_by(phone_number=phone).first()

    if customer is None:
        customer = Customer(
            phone_number=phone,
            full_name=full_name or phone,
            address=address,
            passport_id=passport_id,
            notes=notes,
            is_active=True,
        )
        db.session.add(customer)
        db.session.flush()
        return customer

    if not customer.is_active:
        customer.is_active = True
        customer.deleted_at = None

    if full_name:
        customer.full_name = full_name
    if address:
        customer.address = address
    if passport_id:
        customer.passport_id = passport_id
    if notes:
        customer.notes = notes

    db.session.flush()
    return customer


def ensure_customer_from_input(data: CustomerInput) -> Customer:
    return ensure_customer(
        data.phone_number,
        full_name=data.full_name,
        address=data.address,
        passport_id=data.passport_id,
        notes=data.notes,
    )


def get_active_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, is_active=True).first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def resolve_customer(customer_id: int | None, data: CustomerInput | None) -> Customer | None:
    """Create flows: explicit id wins, else inline upsert, else no customer."""
    if customer_id is not None:
        return get_active_customer(customer_id)
    if data is not None:
        return ensure_customer_from_input(data)
    return None


def resolve_customer_for_update(
    current_customer_id: int | None,
    customer_id,
    data: CustomerInput | None,
) -> Customer | None:
    """
    Update flows.

    customer_id (when sent) replaces the current customer; null detaches it.
    Inline contact data edits the resolved customer in place, or reuses or
    creates one by phone number; full_name and phone_number come together.
    """
    customer = None
    if customer_id is not UNSET:
        customer = get_active_customer(customer_id) if customer_id is not None else None
    elif current_customer_id is not None:
        customer = db.session.query(Customer).filter_by(id=current_customer_id, is_active=True).first()

    if data is None:
        return customer

    if bool(data.full_name) != bool(data.phone_number):
        raise ValidationError("customer.full_name and customer.phone_number must be provided together")
    if not data.phone_number:
        return customer

    if customer is None:
        return ensure_customer_from_input(data)

    if customer.phone_number != data.phone_number:
        taken = db.session.query(Customer).filter_by(phone_number=data.phone_number).first()
        if taken is not None:
            # Phone belongs to someone else: switch to (and refresh) that customer
            return ensure_customer_from_input(data)

    customer.full_name = data.full_name
    customer.phone_number = data.phone_number
    if data.address:
        customer.address = data.address
    if data.passport_id:
        customer.passport_id = data.passport_id
    if data.notes:
        customer.notes = data.notes
    db.session.flush()
    return customer


# =============================================================================
# BALANCES
# =============================================================================

def open_balances(customer_id: int) -> dict:
    """
    Outstanding amounts for one customer, in cents.

    debt: what the customer still owes the shop (open sales)
    credit: what the shop still owes the customer (open purchases)
    """
    debt = (
        db.session.query(func.coalesce(func.sum(Sale.remaining_cents), 0))
        .filter(Sale.customer_id == customer_id, Sale.is_active.is_(True), Sale.remaining_cents > 0)
        .scalar()
    )
    credit = (
        db.session.query(func.coalesce(func.sum(Purchase.remaining_cents), 0))
        .filter(Purchase.customer_id == customer_id, Purchase.is_active.is_(True), Purchase.remaining_cents > 0)
        .scalar()
    )
    return {"debt_cents": int(debt or 0), "credit_cents": int(credit or 0)}


def customer_balance(customer_id: int) -> dict:
    customer = get_active_customer(customer_id)
    balances = open_balances(customer.id)
    return {
        "customer": customer.to_dict(),
        "debt": format_cents(balances["debt_cents"]),
        "credit": format_cents(balances["credit_cents"]),
    }
