"""Customer settlement tests: one payment split across open documents, oldest first."""

from datetime import datetime

import pytest
from conftest import phone_line
from shopledger.models import PaymentAllocation, Purchase
from shopledger.models.payments import TARGET_PURCHASE, TARGET_SALE
from shopledger.schemas import CustomerPaymentInput
from shopledger.services import ledger_service, payment_service
from shopledger.validation import NotFoundError, ValidationError


CUSTOMER = {"full_name": "Ann", "phone_number": "+1000"}


@pytest.fixture
def two_open_sales(make_purchase, make_sale):
    purchase = make_purchase([
        phone_line("350000000000001"),
        phone_line("350000000000002"),
    ])
    first, second = [entry.item for entry in purchase.purchase_items]
    older = make_sale(
        [{"item_id": first.id, "sale_price": "100.00"}],
        payment_type="PAY_LATER",
        customer=CUSTOMER,
        sold_at="2026-01-01T10:00:00Z",
    )
    newer = make_sale(
        [{"item_id": second.id, "sale_price": "80.00"}],
        payment_type="PAY_LATER",
        customer=CUSTOMER,
        sold_at="2026-02-01T10:00:00Z",
    )
    return older, newer


class TestCustomerPayments:
    def test_settlement_pays_oldest_first(self, db_session, two_open_sales):
        older, newer = two_open_sales

        payment = payment_service.record_customer_payment(older.customer_id, CustomerPaymentInput(
            direction="CUSTOMER_PAYS_SHOP", method="CASH", amount_cents=13000,
        ))

        assert older.remaining_cents == 0
        assert older.payment_type == "PAID_NOW"
        assert newer.remaining_cents == 5000

        allocations = sorted(payment.allocations, key=lambda a: a.id)
        assert [(a.target_type, a.target_id, a.amount_cents) for a in allocations] == [
            (TARGET_SALE, older.id, 10000),
            (TARGET_SALE, newer.id, 3000),
        ]
        assert payment.to_dict()["amount"] == "130.00"

        notes = [a.notes for a in ledger_service.active_activities(newer)]
        assert notes == [f"Settlement payment #{payment.id}"]
        assert ledger_service.check_all_ledgers() == []

    def test_overpayment_rejected(self, db_session, two_open_sales):
        older, _ = two_open_sales

        with pytest.raises(ValidationError, match=r"exceed open balance \(180.00\)"):
            payment_service.record_customer_payment(older.customer_id, CustomerPaymentInput(
                direction="CUSTOMER_PAYS_SHOP", method="CARD", amount_cents=18001,
            ))
        assert db_session.query(PaymentAllocation).count() == 0

    def test_no_open_balance_in_direction(self, db_session, two_open_sales):
        older, _ = two_open_sales

        with pytest.raises(ValidationError, match="no open balance"):
            payment_service.record_customer_payment(older.customer_id, CustomerPaymentInput(
                direction="SHOP_PAYS_CUSTOMER", method="CASH", amount_cents=100,
            ))

    def test_shop_pays_customer_for_purchase(self, db_session, make_purchase):
        purchase = make_purchase(
            [phone_line("350000000000001", price="150.00")],
            payment_type="PAY_LATER",
            customer=CUSTOMER,
        )

        payment = payment_service.record_customer_payment(purchase.customer_id, CustomerPaymentInput(
            direction="SHOP_PAYS_CUSTOMER",
            method="CASH",
            amount_cents=15000,
            paid_at=datetime(2026, 3, 1, 12, 0),
        ))

        purchase = db_session.get(Purchase, purchase.id)
        assert purchase.remaining_cents == 0
        assert payment.allocations[0].target_type == TARGET_PURCHASE
        assert payment.allocations[0].target_purchase_id == purchase.id
        assert payment.allocations[0].target_sale_id is None

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.record_customer_payment(999, CustomerPaymentInput(
                direction="CUSTOMER_PAYS_SHOP", method="CASH", amount_cents=100,
            ))


class TestAllocationShape:
    def test_check_target_requires_exactly_one(self):
        allocation = PaymentAllocation(target_type=TARGET_SALE, target_sale_id=1, target_purchase_id=2)
        with pytest.raises(ValueError):
            allocation.check_target()

    def test_target_type_must_match(self):
        allocation = PaymentAllocation(target_type=TARGET_SALE, target_purchase_id=2)
        with pytest.raises(ValueError):
            allocation.check_target()

    def test_unknown_target_type(self):
        with pytest.raises(ValueError):
            PaymentAllocation(target_type="REFUND")
