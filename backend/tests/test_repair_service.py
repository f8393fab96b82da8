"""
Repair engine tests.

Opening a case locks the item IN_REPAIR; completing it releases the item
and posts the cost once on the originating purchase.
"""

import pytest
from conftest import phone_line
from shopledger.models import PurchaseActivity, Repair
from shopledger.models.inventory import STATUS_IN_REPAIR, STATUS_READY_FOR_SALE, STATUS_SOLD
from shopledger.schemas import CreateRepairInput, RepairEntryInput, UpdateRepairEntryInput, UpdateRepairInput
from shopledger.services import ledger_service, repair_service
from shopledger.validation import ConflictError, NotFoundError, ValidationError


def _repair_cost_activities(db_session, purchase_id, activity_type="REPAIR_COST"):
    return (
        db_session.query(PurchaseActivity)
        .filter_by(purchase_id=purchase_id, activity_type=activity_type, is_active=True)
        .order_by(PurchaseActivity.id.asc())
        .all()
    )


class TestCreateCase:
    def test_case_locks_item(self, db_session, stocked_item, technician):
        repair = repair_service.create_case(CreateRepairInput(
            item_id=stocked_item.id,
            description="Battery swap",
            cost_total_cents=4500,
            parts_cost_cents=3000,
            labor_cost_cents=1500,
            technician_id=technician.id,
        ))

        assert repair.status == "PENDING"
        assert stocked_item.status == STATUS_IN_REPAIR

        detail = repair_service.get_repair(repair.id)
        assert detail["cost_total"] == "45.00"
        assert detail["technician"]["username"] == "tech1"
        assert len(detail["entries"]) == 1
        assert detail["entries"][0]["parts_cost"] == "30.00"

    def test_zero_cost_case_has_no_entries(self, db_session, stocked_item):
        repair = repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))
        assert repair_service.active_entries(repair) == []

    def test_item_already_in_repair(self, db_session, stocked_item):
        repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))

        with pytest.raises(ConflictError, match="already in repair"):
            repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Again"))

    def test_sold_item_cannot_be_repaired(self, db_session, stocked_item, make_sale):
        make_sale([{"item_id": stocked_item.id, "sale_price": "200.00"}])

        with pytest.raises(ConflictError, match="Sold item cannot be repaired"):
            repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))

    def test_unknown_technician(self, db_session, stocked_item):
        with pytest.raises(NotFoundError, match="Technician not found"):
            repair_service.create_case(CreateRepairInput(
                item_id=stocked_item.id, description="Inspect", technician_id=999,
            ))
        assert db_session.query(Repair).count() == 0


class TestEntries:
    def test_costs_derived_from_entries(self, db_session, stocked_item):
        repair = repair_service.create_case(CreateRepairInput(item_id=stocked_item.id, description="Inspect"))

        repair_service.add_entry(repair.id, RepairEntryInput(
            description="Screen", cost_total_cents=8000, parts_cost_cents=6000,
        ))
        repair = repair_service.add_entry(repair.id, RepairEntryInput(
            description="Labor", cost_total_cents=2000, labor_cost_cents=2000,
        ))

        assert repair.cost_total_cents == 10000
        assert repair.parts_cost_cents == 6000
        assert repair.labor_cost_cents == 2000

        entry = repair_service.active_entries(repair)[0]
        repair = repair_service.update_entry(entry.id, UpdateRepairEntryInput(cost_total_cents=7000))
        assert repair.cost_total_cents == 9000

    def test_manual_cost_edit_blocked_once_entries_exist(self, db_session, stocked_item):
        repair = repair_service.create_case(CreateRepairInput(
            item_id=stocked_item.id, description="Screen", cost_total_cents=5000,
        ))

        with pytest.raises(ValidationError, match="derived from entries"):
            repair_service.update_case(repair.id, UpdateRepairInput(cost_total_cents=100))


class TestCompleteCase:
    def test_done_posts_cost_exactly_once(self, db_session, make_purchase):
        purchase = make_purchase([phone_line("350000000000001", condition="BROKEN")])
        item = purchase.purchase_items[0].item
        repair = db_session.query(Repair).filter_by(item_id=item.id).one()
        repair_service.add_entry(repair.id, RepairEntryInput(description="Board", cost_total_cents=3000))

        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))
        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE", notes="Checked twice"))

        assert item.status == STATUS_READY_FOR_SALE
        posted = _repair_cost_activities(db_session, purchase.id)
        assert len(posted) == 1
        assert posted[0].amount_cents == 3000
        assert posted[0].notes == "Repaired: total cost 30.00"
        assert posted[0].repair_id == repair.id

        # Informational only: the purchase balance is untouched
        assert purchase.total_price_cents == 10000
        assert purchase.remaining_cents == 0
        assert ledger_service.check_ledger(purchase) == []

    def test_reopen_relocks_item_and_reverses_cost(self, db_session, make_purchase):
        purchase = make_purchase([phone_line("350000000000001", condition="BROKEN")])
        item = purchase.purchase_items[0].item
        repair = db_session.query(Repair).filter_by(item_id=item.id).one()
        repair_service.add_entry(repair.id, RepairEntryInput(description="Battery", cost_total_cents=2000))

        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))
        repair_service.update_case(repair.id, UpdateRepairInput(status="PENDING"))

        assert item.status == STATUS_IN_REPAIR
        # The posted cost stays; an appended reversal cancels it
        assert [a.amount_cents for a in _repair_cost_activities(db_session, purchase.id)] == [2000]
        reversals = _repair_cost_activities(db_session, purchase.id, "REPAIR_REVERSAL")
        assert [a.amount_cents for a in reversals] == [-2000]
        assert reversals[0].notes == "Repair reopened: cost 20.00 reversed"
        assert reversals[0].repair_id == repair.id

        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))
        assert len(_repair_cost_activities(db_session, purchase.id)) == 2
        assert len(_repair_cost_activities(db_session, purchase.id, "REPAIR_REVERSAL")) == 1

        # Informational rows never reach the payment side of the ledger
        assert purchase.remaining_cents == 0
        assert ledger_service.check_ledger(purchase) == []

    def test_reopen_without_posted_cost_appends_nothing(self, db_session, make_purchase):
        purchase = make_purchase([phone_line("350000000000001", condition="BROKEN")])
        item = purchase.purchase_items[0].item
        repair = db_session.query(Repair).filter_by(item_id=item.id).one()

        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))
        repair_service.update_case(repair.id, UpdateRepairInput(status="PENDING"))

        assert _repair_cost_activities(db_session, purchase.id, "REPAIR_REVERSAL") == []

    def test_reopen_leaves_sold_item_alone(self, db_session, make_purchase, make_sale):
        purchase = make_purchase([phone_line("350000000000001", condition="BROKEN")])
        item = purchase.purchase_items[0].item
        repair = db_session.query(Repair).filter_by(item_id=item.id).one()
        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))
        make_sale([{"item_id": item.id, "sale_price": "200.00"}])

        repair_service.update_case(repair.id, UpdateRepairInput(status="PENDING"))

        assert item.status == STATUS_SOLD

    def test_standalone_item_completes_without_purchase(self, db_session):
        from shopledger.schemas import CreateItemInput
        from shopledger.services import inventory_service

        item = inventory_service.create_item(CreateItemInput(
            imei="350000000000077", brand="Google", model="Pixel 7", condition="USED",
        ))
        repair = repair_service.create_case(CreateRepairInput(item_id=item.id, description="Port"))
        repair_service.update_case(repair.id, UpdateRepairInput(status="DONE"))

        assert item.status == STATUS_READY_FOR_SALE
        assert db_session.query(PurchaseActivity).count() == 0


class TestListRepairs:
    def test_filter_by_status_and_search(self, db_session, make_purchase):
        make_purchase([
            phone_line("350000000000001", condition="BROKEN"),
            phone_line("350000000000002", condition="BROKEN", brand="Samsung", model="A52"),
        ])

        pending = repair_service.list_repairs(status="PENDING")
        assert pending["pagination"]["total"] == 2

        found = repair_service.list_repairs(q="samsung")
        assert found["count"] == 1
        assert found["items"][0]["item"]["model"] == "A52"

        assert repair_service.list_repairs(status="DONE")["count"] == 0
