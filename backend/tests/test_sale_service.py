"""
Sale engine tests.

Items must be sellable to join a sale; removing them or deleting the sale
returns them to READY_FOR_SALE.
"""

import pytest
from conftest import phone_line
from shopledger.models import Sale, SaleItem
from shopledger.models.inventory import STATUS_READY_FOR_SALE, STATUS_SOLD
from shopledger.schemas import PaymentInput, UpdateSaleInput
from shopledger.services import ledger_service, sale_service
from shopledger.validation import ConflictError, NotFoundError, ValidationError


class TestCreateSale:
    def test_sale_marks_item_sold(self, db_session, stocked_item, make_sale):
        sale = make_sale([{"item_id": stocked_item.id, "sale_price": "250.00"}])

        assert sale.total_price_cents == 25000
        assert sale.paid_now_cents == 25000
        assert stocked_item.status == STATUS_SOLD
        assert stocked_item.sale_id == sale.id

        activities = ledger_service.active_activities(sale)
        assert [a.notes for a in activities] == ["Initial payment"]
        assert activities[0].paid_at == sale.sold_at

    def test_resolve_by_imei(self, db_session, stocked_item, make_sale):
        sale = make_sale([{"imei": stocked_item.imei, "sale_price": "250.00"}])
        assert sale_service.get_sale(sale.id)["items"][0]["item_id"] == stocked_item.id

    def test_selling_sold_item_conflicts_until_sale_deleted(self, db_session, stocked_item, make_sale):
        first = make_sale([{"item_id": stocked_item.id, "sale_price": "250.00"}])

        with pytest.raises(ConflictError, match="already sold"):
            make_sale([{"item_id": stocked_item.id, "sale_price": "260.00"}])
        assert db_session.query(Sale).count() == 1

        result = sale_service.delete_sale(first.id)
        assert result["released_item_ids"] == [stocked_item.id]
        assert stocked_item.status == STATUS_READY_FOR_SALE
        assert stocked_item.sale_id is None

        second = make_sale([{"item_id": stocked_item.id, "sale_price": "260.00"}])
        assert stocked_item.sale_id == second.id

    def test_item_in_repair_not_sellable(self, db_session, make_purchase, make_sale):
        purchase = make_purchase([phone_line("350000000000001", condition="BROKEN")])
        item = purchase.purchase_items[0].item

        with pytest.raises(ConflictError, match="not sellable"):
            make_sale([{"item_id": item.id, "sale_price": "100.00"}])

    def test_mismatched_id_and_imei(self, db_session, stocked_item, make_sale):
        with pytest.raises(ValidationError, match="does not match"):
            make_sale([{"item_id": stocked_item.id, "imei": "999", "sale_price": "1.00"}])

    def test_missing_item_reference(self, db_session, make_sale):
        with pytest.raises(ValidationError, match="item_id or imei"):
            make_sale([{"sale_price": "1.00"}])

    def test_unknown_imei(self, db_session, make_sale):
        with pytest.raises(NotFoundError):
            make_sale([{"imei": "000000000000000", "sale_price": "1.00"}])

    def test_same_item_twice_rejected(self, db_session, stocked_item, make_sale):
        with pytest.raises(ValidationError):
            make_sale([
                {"item_id": stocked_item.id, "sale_price": "1.00"},
                {"imei": stocked_item.imei, "sale_price": "1.00"},
            ])
        assert stocked_item.status != STATUS_SOLD

    def test_pay_later_sale_tracks_debt(self, db_session, stocked_item, make_sale):
        sale = make_sale(
            [{"item_id": stocked_item.id, "sale_price": "300.00"}],
            payment_type="PAY_LATER",
            paid_now="100.00",
            customer={"full_name": "Bob", "phone_number": "+2000"},
        )

        assert sale.remaining_cents == 20000
        sale = sale_service.add_sale_payment(sale.id, PaymentInput(amount_cents=20000))
        assert sale.remaining_cents == 0
        assert sale.payment_type == "PAID_NOW"
        assert ledger_service.check_ledger(sale) == []


class TestUpdateSale:
    def test_swap_items(self, db_session, make_purchase, make_sale):
        purchase = make_purchase([
            phone_line("350000000000001"),
            phone_line("350000000000002"),
        ])
        first, second = [entry.item for entry in purchase.purchase_items]
        sale = make_sale([{"item_id": first.id, "sale_price": "200.00"}])

        data = UpdateSaleInput.from_payload({
            "items": [{"item_id": second.id, "sale_price": "220.00"}],
        })
        sale = sale_service.update_sale(sale.id, data)

        assert first.status == STATUS_READY_FOR_SALE
        assert first.sale_id is None
        assert second.status == STATUS_SOLD
        assert second.sale_id == sale.id
        assert sale.total_price_cents == 22000
        assert sale.paid_now_cents == 22000
        assert ledger_service.check_ledger(sale) == []

        active = db_session.query(SaleItem).filter_by(sale_id=sale.id, is_active=True).all()
        assert [entry.item_id for entry in active] == [second.id]

    def test_price_edit_keeps_item_sold(self, db_session, stocked_item, make_sale):
        sale = make_sale(
            [{"item_id": stocked_item.id, "sale_price": "200.00"}],
            payment_type="PAY_LATER",
            customer={"full_name": "Bob", "phone_number": "+2000"},
        )

        data = UpdateSaleInput.from_payload({
            "items": [{"item_id": stocked_item.id, "sale_price": "180.00"}],
        })
        sale = sale_service.update_sale(sale.id, data)

        assert stocked_item.status == STATUS_SOLD
        assert sale.total_price_cents == 18000
        assert sale.remaining_cents == 18000


class TestListSales:
    def test_available_items_excludes_sold(self, db_session, make_purchase, make_sale):
        purchase = make_purchase([
            phone_line("350000000000001"),
            phone_line("350000000000002", model="Galaxy S21", brand="Samsung"),
        ])
        first = purchase.purchase_items[0].item
        make_sale([{"item_id": first.id, "sale_price": "200.00"}])

        available = sale_service.list_available_items()
        assert [item["imei"] for item in available] == ["350000000000002"]
        assert sale_service.list_available_items("galaxy")[0]["brand"] == "Samsung"

        listing = sale_service.list_sales()
        assert listing["pagination"]["total"] == 1
        assert listing["items"][0]["status"] == "PAID"


class TestUpdatePayload:
    def test_empty_item_list_is_rejected(self):
        with pytest.raises(ValidationError, match="items must contain at least one entry"):
            UpdateSaleInput.from_payload({"items": []})
