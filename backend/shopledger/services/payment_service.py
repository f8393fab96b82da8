# Overview: Service-layer operations for customer-level settlements; encapsulates business logic and database work.

"""
Customer Settlement Service

WHY: A returning customer often settles several open documents at once
("here is 300 for everything I owe"). One Payment records the money movement
and is split into PaymentAllocations across the customer's open sales (they
pay the shop) or open purchases (the shop pays them), oldest first.

DESIGN PRINCIPLES:
- Each allocation goes through ledger_service.apply_payment, so the
  per-document balance and activity log stay the single source of truth
- An allocation is a tagged variant: exactly one of target_sale_id /
  target_purchase_id is set, matching target_type
- Overpaying the customer's open balance is rejected, nothing is left unallocated
"""

from __future__ import annotations

from ..extensions import db
from ..models import Payment, PaymentAllocation, Purchase, Sale
from ..models.payments import DIRECTION_CUSTOMER_PAYS_SHOP, TARGET_PURCHASE, TARGET_SALE
from ..money import format_cents
from ..schemas import CustomerPaymentInput
from ..time_utils import utcnow
from ..validation import ValidationError
from . import customer_service, ledger_service
from .concurrency import atomic


def _open_documents(customer_id: int, direction: str) -> list:
    model = Sale if direction == DIRECTION_CUSTOMER_PAYS_SHOP else Purchase
    date_column = Sale.sold_at if model is Sale else Purchase.purchased_at
    return (
        db.session.query(model)
        .filter(
            model.customer_id == customer_id,
            model.is_active.is_(True),
            model.remaining_cents > 0,
        )
        .order_by(date_column.asc(), model.id.asc())
        .all()
    )


def record_customer_payment(customer_id: int, data: CustomerPaymentInput) -> Payment:
    """
    Allocate one settlement across the customer's open documents.

    Raises:
        ValidationError: non-positive amount, or more than the open balance
        NotFoundError: customer does not exist
    """
    if data.amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than 0")

    with atomic():
        customer = customer_service.get_active_customer(customer_id)
        documents = _open_documents(customer.id, data.direction)

        open_total = sum(doc.remaining_cents for doc in documents)
        if open_total == 0:
            raise ValidationError("Customer has no open balance in this direction")
        if data.amount_cents > open_total:
            raise ValidationError(
                f"Payment amount cannot exceed open balance ({format_cents(open_total)})"
            )

        paid_at = data.paid_at or utcnow()
        payment = Payment(
            customer_id=customer.id,
            direction=data.direction,
            method=data.method,
            amount_cents=data.amount_cents,
            paid_at=paid_at,
            notes=data.notes,
            is_active=True,
        )
        db.session.add(payment)
        db.session.flush()

        left = data.amount_cents
        for doc in documents:
            if left == 0:
                break
            portion = min(left, doc.remaining_cents)
            ledger_service.apply_payment(doc, portion, f"Settlement payment #{payment.id}", paid_at)

            allocation = PaymentAllocation(payment_id=payment.id, amount_cents=portion, is_active=True)
            if isinstance(doc, Sale):
                allocation.target_type = TARGET_SALE
                allocation.target_sale_id = doc.id
            else:
                allocation.target_type = TARGET_PURCHASE
                allocation.target_purchase_id = doc.id
            allocation.check_target()
            db.session.add(allocation)
            left -= portion

        db.session.flush()

    return payment
