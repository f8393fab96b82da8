"""
HTTP surface tests.

Exercise the blueprints end to end through the Flask test client: JSON in,
JSON out, domain errors mapped to 400/404/409.
"""

import pytest
from conftest import phone_line, purchase_payload, sale_payload


CUSTOMER = {"full_name": "Ann", "phone_number": "+1000"}


def _create_purchase(client, items, **overrides):
    response = client.post('/api/purchases', json=purchase_payload(items, **overrides))
    assert response.status_code == 201, response.get_json()
    return response.get_json()["purchase"]


class TestHealth:
    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["purchases"] == 0


class TestPurchaseRoutes:
    def test_pay_later_flow(self, client, db_session):
        purchase = _create_purchase(
            client,
            [phone_line("350000000000001", price="150")],
            payment_type="PAY_LATER",
            customer=CUSTOMER,
        )
        assert purchase["total_price"] == "150.00"
        assert purchase["paid_now"] == "0.00"
        assert purchase["remaining"] == "150.00"
        assert purchase["customer"]["phone_number"] == "+1000"
        assert purchase["items"][0]["item"]["status"] == "IN_STOCK"

        url = f"/api/purchases/{purchase['id']}/payments"
        assert client.post(url, json={"amount": "60.00"}).status_code == 201
        response = client.post(url, json={"amount": "90.00"})
        assert response.status_code == 201
        settled = response.get_json()["purchase"]
        assert settled["payment_type"] == "PAID_NOW"
        assert settled["remaining"] == "0.00"
        assert [a["amount"] for a in settled["activities"]] == ["60.00", "90.00"]

        response = client.post(url, json={"amount": "1.00"})
        assert response.status_code == 400
        assert "already fully paid" in response.get_json()["error"]

    def test_validation_errors(self, client, db_session):
        response = client.post('/api/purchases', json=purchase_payload(
            [phone_line("350000000000001", price="12.345")],
        ))
        assert response.status_code == 400
        assert "purchase_price" in response.get_json()["error"]

        response = client.post('/api/purchases', json=purchase_payload([]))
        assert response.status_code == 400

        response = client.post('/api/purchases', json=purchase_payload(
            [phone_line("350000000000001")], payment_type="LATER",
        ))
        assert response.status_code == 400

        response = client.post('/api/purchases', json=purchase_payload(
            [phone_line("350000000000001", price="1e999999")],
        ))
        assert response.status_code == 400
        assert "cannot exceed" in response.get_json()["error"]

        assert client.get('/api/purchases').get_json()["pagination"]["total"] == 0

    def test_duplicate_imei_conflict(self, client, db_session):
        _create_purchase(client, [phone_line("350000000000001")])

        response = client.post('/api/purchases', json=purchase_payload([phone_line("350000000000001")]))
        assert response.status_code == 409

        listing = client.get('/api/purchases').get_json()
        assert listing["pagination"]["total"] == 1

    def test_update_and_missing(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001", price="100")])
        item_id = purchase["items"][0]["item_id"]

        response = client.put(f"/api/purchases/{purchase['id']}", json={
            "notes": "Bought at the counter",
            "items": [phone_line("350000000000001", price="110", item_id=item_id)],
        })
        assert response.status_code == 200
        updated = response.get_json()["purchase"]
        assert updated["total_price"] == "110.00"
        assert updated["notes"] == "Bought at the counter"

        assert client.get('/api/purchases/9999').status_code == 404
        assert client.delete('/api/purchases/9999').status_code == 404

    def test_list_filters(self, client, db_session):
        _create_purchase(client, [phone_line("350000000000001")])
        _create_purchase(
            client,
            [phone_line("350000000000002")],
            payment_type="PAY_LATER",
            customer=CUSTOMER,
        )

        body = client.get('/api/purchases?payment_type=PAY_LATER&per_page=5').get_json()
        assert body["pagination"]["total"] == 1
        assert body["pagination"]["per_page"] == 5

        _create_purchase(
            client,
            [phone_line("350000000000003")],
            purchased_at="2025-03-02T15:00:00Z",
        )
        body = client.get('/api/purchases?date_from=2025-03-02&date_to=2025-03-02').get_json()
        assert body["pagination"]["total"] == 1
        assert body["items"][0]["purchased_at"] == "2025-03-02T15:00:00Z"

        assert client.get('/api/purchases?payment_type=BOGUS').status_code == 400
        assert client.get('/api/purchases?page=abc').status_code == 400


class TestSaleRoutes:
    def test_double_sale_and_release(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001")])
        item_id = purchase["items"][0]["item_id"]

        response = client.post('/api/sales', json=sale_payload([{"item_id": item_id, "sale_price": "250"}]))
        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["items"][0]["item"]["status"] == "SOLD"

        response = client.post('/api/sales', json=sale_payload([{"item_id": item_id, "sale_price": "260"}]))
        assert response.status_code == 409

        available = client.get('/api/sales/available-items').get_json()["items"]
        assert available == []

        response = client.delete(f"/api/sales/{sale['id']}")
        assert response.status_code == 200
        assert response.get_json()["released_item_ids"] == [item_id]

        response = client.post('/api/sales', json=sale_payload([{"item_id": item_id, "sale_price": "260"}]))
        assert response.status_code == 201

    def test_purchase_delete_cascades_to_sale(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001")])
        item_id = purchase["items"][0]["item_id"]
        sale = client.post(
            '/api/sales', json=sale_payload([{"item_id": item_id, "sale_price": "250"}]),
        ).get_json()["sale"]

        response = client.delete(f"/api/purchases/{purchase['id']}")
        assert response.status_code == 200
        assert response.get_json()["sales"] == [sale["id"]]

        assert client.get(f"/api/sales/{sale['id']}").status_code == 404
        assert client.get(f"/api/inventory/{item_id}").status_code == 404

    def test_sale_payment(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001")])
        item_id = purchase["items"][0]["item_id"]
        sale = client.post('/api/sales', json=sale_payload(
            [{"item_id": item_id, "sale_price": "250"}],
            payment_type="PAY_LATER",
            paid_now="50",
            customer=CUSTOMER,
        )).get_json()["sale"]
        assert sale["remaining"] == "200.00"

        response = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": "250"})
        assert response.status_code == 400
        assert "cannot exceed remaining (200.00)" in response.get_json()["error"]


class TestRepairRoutes:
    def test_repair_completion(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001", condition="BROKEN")])
        item_id = purchase["items"][0]["item_id"]

        repairs = client.get('/api/repairs?status=PENDING').get_json()
        assert repairs["pagination"]["total"] == 1
        repair_id = repairs["items"][0]["id"]

        response = client.post(f"/api/repairs/{repair_id}/entries", json={
            "description": "Screen replacement",
            "cost_total": "45.00",
            "parts_cost": "30.00",
            "labor_cost": "15.00",
        })
        assert response.status_code == 201
        assert response.get_json()["repair"]["cost_total"] == "45.00"

        response = client.put(f"/api/repairs/{repair_id}", json={"status": "DONE"})
        assert response.status_code == 200
        assert response.get_json()["repair"]["item"]["status"] == "READY_FOR_SALE"

        detail = client.get(f"/api/purchases/{purchase['id']}").get_json()["purchase"]
        repair_costs = [a for a in detail["activities"] if a["activity_type"] == "REPAIR_COST"]
        assert len(repair_costs) == 1
        assert repair_costs[0]["notes"] == "Repaired: total cost 45.00"
        assert detail["remaining"] == "0.00"

        inventory = client.get('/api/inventory').get_json()
        assert inventory["items"][0]["id"] == item_id
        assert inventory["items"][0]["repair_cost"] == "45.00"

    def test_create_case_conflicts(self, client, db_session):
        purchase = _create_purchase(client, [phone_line("350000000000001", condition="BROKEN")])
        item_id = purchase["items"][0]["item_id"]

        response = client.post('/api/repairs', json={"item_id": item_id, "description": "Again"})
        assert response.status_code == 409

        response = client.post('/api/repairs', json={"description": "No item"})
        assert response.status_code == 400

        assert client.get('/api/repairs/available-items').get_json()["items"] == []


class TestInventoryRoutes:
    def test_crud(self, client, db_session):
        response = client.post('/api/inventory', json={
            "imei": "350000000000050",
            "brand": "Google",
            "model": "Pixel 8",
            "condition": "GOOD",
        })
        assert response.status_code == 201
        item = response.get_json()["item"]
        assert item["status"] == "IN_STOCK"

        response = client.put(f"/api/inventory/{item['id']}", json={"status": "READY_FOR_SALE"})
        assert response.status_code == 200
        assert response.get_json()["item"]["status"] == "READY_FOR_SALE"

        response = client.put(f"/api/inventory/{item['id']}", json={"status": "SOLD"})
        assert response.status_code == 400

        assert client.delete(f"/api/inventory/{item['id']}").status_code == 200
        assert client.get(f"/api/inventory/{item['id']}").status_code == 404


class TestCustomerRoutes:
    def test_balance_and_settlement(self, client, db_session):
        purchase = _create_purchase(
            client,
            [phone_line("350000000000001", price="150")],
            payment_type="PAY_LATER",
            customer=CUSTOMER,
        )
        customer_id = purchase["customer"]["id"]

        balance = client.get(f"/api/customers/{customer_id}/balance").get_json()
        assert balance["credit"] == "150.00"
        assert balance["debt"] == "0.00"

        response = client.post(f"/api/customers/{customer_id}/payments", json={
            "direction": "SHOP_PAYS_CUSTOMER",
            "method": "CASH",
            "amount": "150",
        })
        assert response.status_code == 201
        payment = response.get_json()["payment"]
        assert payment["allocations"][0]["target_id"] == purchase["id"]

        balance = client.get(f"/api/customers/{customer_id}/balance").get_json()
        assert balance["credit"] == "0.00"

        assert client.get('/api/customers/999/balance').status_code == 404


class TestCommands:
    @pytest.fixture
    def runner(self, app):
        return app.test_cli_runner()

    def test_ledger_check_passes(self, runner, client, db_session):
        _create_purchase(client, [phone_line("350000000000001")])

        result = runner.invoke(args=["ledger", "check"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_create_technician(self, runner, db_session):
        result = runner.invoke(args=["users", "create-technician", "--username", "sam", "--full-name", "Sam Lee"])
        assert result.exit_code == 0
        assert "PASS Created technician: sam" in result.output

        result = runner.invoke(args=["users", "create-technician", "--username", "sam", "--full-name", "Sam Lee"])
        assert result.exit_code == 1
        assert "already exists" in result.output
