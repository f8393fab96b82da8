"""Ledger helper tests: balance math, money parsing and the consistency check."""

from datetime import datetime

import pytest
from conftest import phone_line
from shopledger.money import format_cents, parse_money
from shopledger.services import ledger_service
from shopledger.time_utils import parse_iso_datetime, to_utc_z
from shopledger.validation import ValidationError, optional_period_end


class TestComputeBalance:
    def test_paid_now_settles_total(self):
        assert ledger_service.compute_balance(15000, "PAID_NOW", None) == (15000, 0)
        assert ledger_service.compute_balance(15000, "PAID_NOW", 100) == (15000, 0)

    def test_pay_later_defaults_to_zero(self):
        assert ledger_service.compute_balance(15000, "PAY_LATER", None) == (0, 15000)
        assert ledger_service.compute_balance(15000, "PAY_LATER", 5000) == (5000, 10000)

    def test_overpay_rejected(self):
        with pytest.raises(ValidationError):
            ledger_service.compute_balance(100, "PAY_LATER", 101)

    def test_customer_requirement(self):
        ledger_service.ensure_customer_requirement("PAID_NOW", None, 0)
        with pytest.raises(ValidationError):
            ledger_service.ensure_customer_requirement("PAID_NOW", None, 1)
        with pytest.raises(ValidationError):
            ledger_service.ensure_customer_requirement("PAY_LATER", None, 0)


class TestMoney:
    @pytest.mark.parametrize("raw,cents", [
        ("150", 15000),
        ("150.5", 15050),
        ("0.01", 1),
        (12, 1200),
        (19.99, 1999),
    ])
    def test_parse(self, raw, cents):
        assert parse_money(raw, "amount") == cents

    @pytest.mark.parametrize("raw", ["-1", "1.001", "abc", "NaN", None, True, "10000000", "1e25", "1e999999"])
    def test_parse_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_money(raw, "amount")

    def test_format(self):
        assert format_cents(15000) == "150.00"
        assert format_cents(5) == "0.05"
        assert format_cents(None) is None


class TestTimestamps:
    def test_offsets_normalize_to_naive_utc(self):
        assert parse_iso_datetime("2026-10-19T12:30:00Z") == datetime(2026, 10, 19, 12, 30)
        assert parse_iso_datetime("2026-10-19T14:30:00+02:00") == datetime(2026, 10, 19, 12, 30)
        assert parse_iso_datetime("  ") is None

    def test_period_end_covers_whole_day(self):
        assert optional_period_end("2026-10-19", "date_to") == datetime(2026, 10, 19, 23, 59, 59, 999999)
        assert optional_period_end("2026-10-19T08:00", "date_to") == datetime(2026, 10, 19, 8, 0)
        with pytest.raises(ValidationError):
            optional_period_end("19/10/2026", "date_to")

    def test_serialize(self):
        assert to_utc_z(datetime(2026, 10, 19, 12, 30, 5, 120)) == "2026-10-19T12:30:05Z"
        assert to_utc_z(None) is None


class TestCheckLedger:
    def test_clean_after_normal_flow(self, db_session, make_purchase):
        make_purchase(
            [phone_line("350000000000001", price="150.00")],
            payment_type="PAY_LATER",
            paid_now="40.00",
            customer={"full_name": "Ann", "phone_number": "+1000"},
        )
        assert ledger_service.check_all_ledgers() == []

    def test_detects_drift(self, db_session, make_purchase):
        purchase = make_purchase([phone_line("350000000000001", price="150.00")])
        # Simulate a row written outside the service layer
        purchase.paid_now_cents = 10000
        purchase.remaining_cents = 5000

        problems = ledger_service.check_ledger(purchase)
        assert any("differ from paid_now" in p for p in problems)
        db_session.rollback()
