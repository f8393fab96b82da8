# Overview: Transaction boundary for mutating service operations; maps database failures to domain errors.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


# Constraint name -> message surfaced to the caller
CONSTRAINT_MESSAGES = {
    "uq_inventory_items_active_imei": "Inventory item with this IMEI already exists",
    "uq_sale_items_active_item": "Inventory item is already attached to an active sale",
    "uq_customers_phone_number": "Customer with this phone number already exists",
    "ck_inventory_items_sold_has_sale": "Inventory item status does not match its sale reference",
    "ck_purchases_balance": "Purchase total must equal paid_now + remaining",
    "ck_sales_balance": "Sale total must equal paid_now + remaining",
    "ck_payment_allocations_single_target": "Allocation must reference exactly one sale or purchase",
}


def describe_integrity_error(exc: IntegrityError) -> str:
    raw = str(exc.orig) if exc.orig is not None else str(exc)
    for name, message in CONSTRAINT_MESSAGES.items():
        if name in raw:
            return message
    # SQLite reports partial unique indexes by column, not by index name
    if "inventory_items.imei" in raw:
        return CONSTRAINT_MESSAGES["uq_inventory_items_active_imei"]
    if "sale_items.item_id" in raw:
        return CONSTRAINT_MESSAGES["uq_sale_items_active_item"]
    if "customers.phone_number" in raw:
        return CONSTRAINT_MESSAGES["uq_customers_phone_number"]
    return "Write rejected by a database constraint"


@contextmanager
def atomic():
    """
    Run one mutating operation inside a single database transaction.

    Commits on success; any exception rolls back every write made inside the
    block. Constraint violations (unique IMEI, one active sale per item) and
    optimistic version conflicts surface as ConflictError. Nothing is retried:
    a conflicting concurrent write must be resubmitted by the caller.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.info("Integrity conflict: %s", exc.orig)
        raise ConflictError(describe_integrity_error(exc)) from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was changed by another request; reload and retry") from exc
    except Exception:
        db.session.rollback()
        raise
