"""Inventory registry tests: state machine, IMEI uniqueness and the stock listing."""

import pytest
from conftest import phone_line
from shopledger.extensions import db
from shopledger.models import InventoryItem
from shopledger.models.inventory import (
    STATUS_IN_REPAIR,
    STATUS_IN_STOCK,
    STATUS_READY_FOR_SALE,
    STATUS_RETURNED,
    STATUS_SOLD,
)
from shopledger.schemas import CreateItemInput, CreateRepairInput, UpdateItemInput
from shopledger.services import inventory_service, repair_service
from shopledger.validation import ConflictError, NotFoundError


def _item(status=STATUS_IN_STOCK):
    return InventoryItem(
        imei="350000000000001",
        brand="Apple",
        model="iPhone 12",
        condition="GOOD",
        status=status,
        is_active=True,
    )


class TestTransitions:
    @pytest.mark.parametrize("start,target", [
        (STATUS_IN_STOCK, STATUS_IN_REPAIR),
        (STATUS_READY_FOR_SALE, STATUS_IN_REPAIR),
        (STATUS_IN_REPAIR, STATUS_READY_FOR_SALE),
        (STATUS_IN_STOCK, STATUS_RETURNED),
    ])
    def test_allowed_edges(self, start, target):
        item = _item(start)
        inventory_service.transition(item, target)
        assert item.status == target

    @pytest.mark.parametrize("start,target", [
        (STATUS_IN_REPAIR, STATUS_IN_STOCK),
        (STATUS_SOLD, STATUS_IN_STOCK),
        (STATUS_RETURNED, STATUS_READY_FOR_SALE),
        (STATUS_IN_REPAIR, STATUS_RETURNED),
    ])
    def test_illegal_edges(self, start, target):
        item = _item(start)
        with pytest.raises(ConflictError, match="cannot move"):
            inventory_service.transition(item, target)
        assert item.status == start

    def test_same_status_is_noop(self):
        item = _item(STATUS_IN_REPAIR)
        inventory_service.transition(item, STATUS_IN_REPAIR)
        assert item.status == STATUS_IN_REPAIR

    def test_sold_requires_sale(self):
        with pytest.raises(ValueError):
            inventory_service.transition(_item(), STATUS_SOLD)


class TestRegistry:
    def test_create_and_update_item(self, db_session):
        item = inventory_service.create_item(CreateItemInput.from_payload({
            "imei": " 350000000000010 ",
            "brand": "Samsung",
            "model": "S22",
            "condition": "USED",
            "expected_sale_price": "320.5",
        }))
        assert item.imei == "350000000000010"
        assert item.to_dict()["expected_sale_price"] == "320.50"

        item = inventory_service.update_item(item.id, UpdateItemInput.from_payload({
            "color": "Black",
            "status": "READY_FOR_SALE",
        }))
        assert item.color == "Black"
        assert item.status == STATUS_READY_FOR_SALE

    def test_duplicate_active_imei(self, db_session, stocked_item):
        with pytest.raises(ConflictError, match="already exists"):
            inventory_service.create_item(CreateItemInput(
                imei=stocked_item.imei, brand="X", model="Y", condition="GOOD",
            ))

    def test_manual_status_cannot_skip_repair(self, db_session, stocked_item):
        repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))

        with pytest.raises(ConflictError):
            inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_IN_STOCK))

        db.session.expire_all()
        assert stocked_item.status == STATUS_IN_REPAIR

    def test_manual_status_cannot_release_sold_item(self, db_session, stocked_item, make_sale):
        sale = make_sale([{"item_id": stocked_item.id, "sale_price": "150.00"}])

        with pytest.raises(ConflictError, match="is sold"):
            inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_READY_FOR_SALE))

        db.session.expire_all()
        assert stocked_item.status == STATUS_SOLD
        assert stocked_item.sale_id == sale.id

    def test_manual_status_cannot_end_repair(self, db_session, stocked_item):
        repair = repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))

        with pytest.raises(ConflictError, match="in repair"):
            inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_READY_FOR_SALE))

        db.session.expire_all()
        assert stocked_item.status == STATUS_IN_REPAIR
        assert repair.status == "PENDING"

    def test_manual_edges(self, db_session, stocked_item):
        item = inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_READY_FOR_SALE))
        assert item.status == STATUS_READY_FOR_SALE

        with pytest.raises(ConflictError, match="cannot move"):
            inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_IN_STOCK))

        item = inventory_service.update_item(stocked_item.id, UpdateItemInput(status=STATUS_RETURNED))
        assert item.status == STATUS_RETURNED

    def test_deactivate_rules(self, db_session, stocked_item, make_sale):
        make_sale([{"item_id": stocked_item.id, "sale_price": "150.00"}])
        with pytest.raises(ConflictError, match="already sold"):
            inventory_service.deactivate_item(stocked_item.id)

        other = inventory_service.create_item(CreateItemInput(
            imei="350000000000099", brand="X", model="Y", condition="GOOD",
        ))
        inventory_service.deactivate_item(other.id)
        with pytest.raises(NotFoundError):
            inventory_service.get_active_item(other.id)


class TestStockListing:
    def test_listing_includes_costs_and_hides_sold(self, db_session, make_purchase, make_sale):
        purchase = make_purchase([
            phone_line("350000000000001", price="100.00"),
            phone_line("350000000000002", price="80.00"),
        ])
        first, second = [entry.item for entry in purchase.purchase_items]
        repair_service.create_case(CreateRepairInput(
            item_id=second.id, description="Screen", cost_total_cents=2500,
        ))
        make_sale([{"item_id": first.id, "sale_price": "200.00"}])

        listing = inventory_service.list_items()
        assert listing["pagination"]["total"] == 1

        row = listing["items"][0]
        assert row["id"] == second.id
        assert row["item_name"] == "Apple iPhone 12"
        assert row["purchase_cost"] == "80.00"
        assert row["repair_cost"] == "25.00"
        assert row["cost"] == "105.00"

    def test_listing_filters(self, db_session, make_purchase):
        make_purchase([
            phone_line("350000000000001"),
            phone_line("350000000000002", condition="BROKEN", brand="Nokia"),
        ])

        assert inventory_service.list_items(status=STATUS_IN_REPAIR)["pagination"]["total"] == 1
        assert inventory_service.list_items(condition="GOOD")["pagination"]["total"] == 1
        assert inventory_service.list_items(q="nokia")["items"][0]["brand"] == "Nokia"
        assert inventory_service.list_repairable_items()[0]["imei"] == "350000000000001"
