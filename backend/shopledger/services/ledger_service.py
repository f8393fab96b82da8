# Overview: Service-layer operations for the payment/activity ledger shared by purchases and sales.

"""
Payment/Activity Ledger

WHY: Purchases (shop owes seller) and sales (customer owes shop) carry the
same denormalized balance: total_price = paid_now + remaining. Every partial
payment is a read-modify-write of those two fields plus one appended activity
row, and it must happen inside the caller's transaction so two concurrent
payments cannot both spend the same remaining balance.

DESIGN PRINCIPLES:
- remaining/paid_now are authoritative; activities are the append-only audit log
- Nothing here commits; callers wrap operations in concurrency.atomic()
- version_id on Purchase/Sale turns a lost update into a ConflictError
- Repair-cost activities are informational and never move the balance
"""

from __future__ import annotations

from datetime import datetime
from typing import Union

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Purchase, PurchaseActivity, Sale, SaleActivity
from ..money import format_cents
from ..time_utils import utcnow
from ..validation import ValidationError


Target = Union[Purchase, Sale]


# =============================================================================
# PAYMENT TYPES / METHODS (CONSTANTS)
# =============================================================================

PAYMENT_TYPE_PAID_NOW = "PAID_NOW"
PAYMENT_TYPE_PAY_LATER = "PAY_LATER"

PAYMENT_TYPES = [PAYMENT_TYPE_PAID_NOW, PAYMENT_TYPE_PAY_LATER]

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_OTHER = "OTHER"

PAYMENT_METHODS = [METHOD_CASH, METHOD_CARD, METHOD_OTHER]


# =============================================================================
# ACTIVITY TYPES / NOTES (CONSTANTS)
# =============================================================================

ACTIVITY_PAYMENT = "PAYMENT"
ACTIVITY_REPAIR_COST = "REPAIR_COST"
ACTIVITY_REPAIR_REVERSAL = "REPAIR_REVERSAL"

NOTE_FULLY_PAID = "Fully paid"
NOTE_INITIAL_PARTIAL = "Initial partial payment"
NOTE_INITIAL_SALE_PAYMENT = "Initial payment"
NOTE_UPDATE_PAYMENT = "Payment recorded on update"


# =============================================================================
# BALANCE COMPUTATION
# =============================================================================

def compute_balance(total_cents: int, payment_type: str, paid_now_cents: int | None) -> tuple[int, int]:
    """
    Returns (paid_now_cents, remaining_cents) for a document total.

    PAID_NOW always settles the full total; otherwise paid_now defaults to 0.
    """
    if payment_type == PAYMENT_TYPE_PAID_NOW:
        paid_now = total_cents
    else:
        paid_now = paid_now_cents or 0

    remaining = total_cents - paid_now
    if remaining < 0:
        raise ValidationError("paid_now cannot be greater than total_price")
    return paid_now, remaining


def ensure_customer_requirement(payment_type: str, customer: Customer | None, remaining_cents: int) -> None:
    """An open balance (or an explicit pay-later) must be owed by or to someone."""
    if customer is None and (payment_type == PAYMENT_TYPE_PAY_LATER or remaining_cents > 0):
        raise ValidationError("Customer details are required for PAY_LATER or remaining balance")


# =============================================================================
# ACTIVITIES
# =============================================================================

def _activity_model(target: Target):
    if isinstance(target, Purchase):
        return PurchaseActivity, PurchaseActivity.purchase_id
    if isinstance(target, Sale):
        return SaleActivity, SaleActivity.sale_id
    raise TypeError(f"Unsupported ledger target: {type(target).__name__}")


def post_activity(
    target: Target,
    amount_cents: int,
    notes: str | None = None,
    paid_at: datetime | None = None,
    **extra,
):
    """Append one activity row to a purchase or sale (no balance change)."""
    if isinstance(target, Purchase):
        activity = PurchaseActivity(purchase_id=target.id, **extra)
    else:
        activity = SaleActivity(sale_id=target.id, **extra)
    activity.amount_cents = amount_cents
    activity.notes = notes
    activity.paid_at = paid_at or utcnow()
    db.session.add(activity)
    return activity


def active_activities(target: Target, *, payments_only: bool = False) -> list:
    model, fk = _activity_model(target)
    query = db.session.query(model).filter(fk == target.id, model.is_active.is_(True))
    if payments_only and model is PurchaseActivity:
        query = query.filter(PurchaseActivity.activity_type == ACTIVITY_PAYMENT)
    return query.order_by(model.paid_at.asc(), model.id.asc()).all()


def activity_total(target: Target) -> int:
    """Sum of active payment activities (repair-cost entries excluded)."""
    model, fk = _activity_model(target)
    query = db.session.query(func.coalesce(func.sum(model.amount_cents), 0)).filter(
        fk == target.id,
        model.is_active.is_(True),
    )
    if model is PurchaseActivity:
        query = query.filter(PurchaseActivity.activity_type == ACTIVITY_PAYMENT)
    return int(query.scalar() or 0)


def deactivate_activities(target: Target, now: datetime) -> int:
    count = 0
    for activity in active_activities(target):
        activity.is_active = False
        activity.deleted_at = now
        count += 1
    return count


# =============================================================================
# PAYMENTS
# =============================================================================

def apply_payment(
    target: Target,
    amount_cents: int,
    notes: str | None = None,
    paid_at: datetime | None = None,
):
    """
    Apply a partial payment to a purchase or sale.

    Validates 0 < amount <= remaining, moves the amount from remaining to
    paid_now, flips payment_type to PAID_NOW once the balance closes, and
    appends one activity. Runs inside the caller's transaction.

    Raises:
        ValidationError: non-positive amount, already settled, or overpayment
    """
    label = type(target).__name__

    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than 0")

    if target.remaining_cents <= 0:
        raise ValidationError(f"{label} is already fully paid")

    if amount_cents > target.remaining_cents:
        raise ValidationError(
            f"Payment amount cannot exceed remaining ({format_cents(target.remaining_cents)})"
        )

    target.paid_now_cents += amount_cents
    target.remaining_cents -= amount_cents

    if target.remaining_cents == 0:
        target.payment_type = PAYMENT_TYPE_PAID_NOW

    note = NOTE_FULLY_PAID if target.remaining_cents == 0 else notes
    extra = {"activity_type": ACTIVITY_PAYMENT} if isinstance(target, Purchase) else {}
    activity = post_activity(target, amount_cents, note, paid_at, **extra)
    db.session.flush()
    return activity


def rebalance(
    target: Target,
    total_cents: int,
    payment_type: str,
    paid_now_cents: int | None,
    customer: Customer | None,
) -> Target:
    """
    Update flows: recompute paid_now/remaining for a (possibly new) total.

    paid_now_cents=None keeps the current amount (or settles in full for
    PAID_NOW). paid_now may only grow: the increase is recorded as a payment
    activity, and going below what activities already record is rejected.
    """
    if paid_now_cents is not None:
        paid_now = paid_now_cents
        if payment_type == PAYMENT_TYPE_PAID_NOW and paid_now != total_cents:
            raise ValidationError("PAID_NOW requires paid_now to equal total_price")
    elif payment_type == PAYMENT_TYPE_PAID_NOW:
        paid_now = total_cents
    else:
        paid_now = target.paid_now_cents

    remaining = total_cents - paid_now
    if remaining < 0:
        raise ValidationError("paid_now cannot be greater than total_price")

    ensure_customer_requirement(payment_type, customer, remaining)

    recorded = activity_total(target)
    if paid_now < recorded:
        raise ValidationError(
            f"paid_now cannot be lower than payments already recorded ({format_cents(recorded)})"
        )
    if paid_now > recorded:
        extra = {"activity_type": ACTIVITY_PAYMENT} if isinstance(target, Purchase) else {}
        post_activity(
            target,
            paid_now - recorded,
            NOTE_FULLY_PAID if remaining == 0 else NOTE_UPDATE_PAYMENT,
            **extra,
        )

    target.customer_id = customer.id if customer else None
    target.payment_type = payment_type
    target.total_price_cents = total_cents
    target.paid_now_cents = paid_now
    target.remaining_cents = remaining
    return target



# =============================================================================
# CONSISTENCY CHECK
# =============================================================================

def check_ledger(target: Target) -> list[str]:
    """
    Returns a list of problems with a document's ledger (empty when consistent).

    Checks the balance identity, non-negative remaining, that payment
    activities never exceed the total, and that they agree with paid_now.
    """
    problems = []
    label = f"{type(target).__name__} #{target.id}"

    if target.total_price_cents != target.paid_now_cents + target.remaining_cents:
        problems.append(f"{label}: total_price != paid_now + remaining")
    if target.remaining_cents < 0:
        problems.append(f"{label}: remaining is negative")

    paid_by_activities = activity_total(target)
    if paid_by_activities > target.total_price_cents:
        problems.append(
            f"{label}: activities ({format_cents(paid_by_activities)}) exceed total "
            f"({format_cents(target.total_price_cents)})"
        )
    if paid_by_activities != target.paid_now_cents:
        problems.append(
            f"{label}: activities ({format_cents(paid_by_activities)}) differ from paid_now "
            f"({format_cents(target.paid_now_cents)})"
        )
    return problems


def check_all_ledgers() -> list[str]:
    """Run check_ledger over every active purchase and sale."""
    problems = []
    for model in (Purchase, Sale):
        for target in db.session.query(model).filter(model.is_active.is_(True)).order_by(model.id.asc()):
            problems.extend(check_ledger(target))
    return problems
