"""Shipment wizard endpoint tests.

Uses the `shipment` fixture (purchase rate 7, goods 1500 RMB, 200 pieces).
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient


def _d(value) -> Decimal:
    return Decimal(str(value))


ITEM_FIELDS = (
    "id", "supplier_id", "product_name", "cartons_ctn", "pieces_per_carton_pcs",
    "purchase_price_per_piece_rmb",
)

SHIPPING_STEP = {
    "step": "shipping",
    "commission_rate_percent": "2",
    "shipping_area_sqm": "10",
    "shipping_cost_per_sqm_usd": "5",
    "usd_to_rmb_rate": "7",
    "rmb_to_egp_rate": "7",
}


def _customs_step(shipment: dict) -> dict:
    return {
        "step": "customs",
        "customs_invoice_date": "2025-03-20",
        "items": [
            {
                "item_id": item["id"],
                "customs_cost_per_piece_egp": "1",
                "takhreeg_cost_per_carton_egp": "2",
            }
            for item in shipment["items"]
        ],
    }


@pytest.mark.api
@pytest.mark.asyncio
class TestCreateShipment:

    async def test_create_computes_goods_totals(self, shipment):
        assert shipment["status"] == "awaiting_shipping"
        assert shipment["last_step"] == 1
        assert shipment["shipment_code"].startswith("SHP-20250301-")
        assert _d(shipment["purchase_cost_rmb"]) == Decimal("1500")
        assert _d(shipment["purchase_cost_egp"]) == Decimal("10500")
        assert _d(shipment["final_total_cost_egp"]) == Decimal("10500")
        assert _d(shipment["balance_egp"]) == Decimal("10500")
        assert shipment["shipping_company_name"] == "Sea Freight Co"
        assert [i["total_pieces_cou"] for i in shipment["items"]] == [100, 100]

    async def test_codes_are_sequential_per_day(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post("/api/shipments/", headers=auth_headers, json={
            "shipment_name": "Second",
            "purchase_date": "2025-03-01",
            "purchase_rmb_to_egp_rate": "7",
            "items": [{"product_name": "Cup", "cartons_ctn": 1, "pieces_per_carton_pcs": 1,
                       "purchase_price_per_piece_rmb": "1"}],
        })
        assert resp.status_code == 201
        assert resp.json()["shipment_code"] == "SHP-20250301-002"

    async def test_create_without_items_rejected(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/shipments/", headers=auth_headers, json={
            "shipment_name": "Empty",
            "purchase_date": "2025-03-01",
            "purchase_rmb_to_egp_rate": "7",
            "items": [],
        })
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_zero_rate_rejected(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/shipments/", headers=auth_headers, json={
            "shipment_name": "Bad rate",
            "purchase_date": "2025-03-01",
            "purchase_rmb_to_egp_rate": "0",
            "items": [{"product_name": "Cup", "cartons_ctn": 1, "pieces_per_carton_pcs": 1,
                       "purchase_price_per_piece_rmb": "1"}],
        })
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_RATE"

    async def test_unknown_supplier_rejected(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/shipments/", headers=auth_headers, json={
            "shipment_name": "Ghost supplier",
            "purchase_date": "2025-03-01",
            "purchase_rmb_to_egp_rate": "7",
            "items": [{"supplier_id": "nope", "product_name": "Cup", "cartons_ctn": 1,
                       "pieces_per_carton_pcs": 1, "purchase_price_per_piece_rmb": "1"}],
        })
        assert resp.status_code == 404
        list_resp = await client.get("/api/shipments/", headers=auth_headers)
        assert list_resp.json()["total"] == 0

    async def test_default_rate_from_settings(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/shipments/", headers=auth_headers, json={
            "shipment_name": "No rate",
            "purchase_date": "2025-03-01",
            "items": [{"product_name": "Cup", "cartons_ctn": 1, "pieces_per_carton_pcs": 1,
                       "purchase_price_per_piece_rmb": "1"}],
        })
        assert resp.status_code == 201
        assert _d(resp.json()["purchase_rmb_to_egp_rate"]) == Decimal("7.15")

    async def test_viewer_can_read_but_not_write(self, client: AsyncClient, viewer_headers, shipment):
        resp = await client.get(f"/api/shipments/{shipment['id']}", headers=viewer_headers)
        assert resp.status_code == 200
        resp = await client.patch(
            f"/api/shipments/{shipment['id']}", headers=viewer_headers, json=SHIPPING_STEP
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "PERMISSION_DENIED"

    async def test_requires_authentication(self, client: AsyncClient):
        resp = await client.get("/api/shipments/")
        assert resp.status_code == 401


@pytest.mark.api
@pytest.mark.asyncio
class TestWizardSteps:

    async def test_shipping_step(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.patch(
            f"/api/shipments/{shipment['id']}", headers=auth_headers, json=SHIPPING_STEP
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert _d(data["commission_cost_rmb"]) == Decimal("30")
        assert _d(data["commission_cost_egp"]) == Decimal("210")
        assert _d(data["shipping_cost_rmb"]) == Decimal("350")
        assert _d(data["shipping_cost_egp"]) == Decimal("2450")
        assert _d(data["final_total_cost_egp"]) == Decimal("13160")
        assert data["status"] == "awaiting_shipping"
        assert data["last_step"] == 2
        assert _d(data["shipping"]["usd_to_rmb_rate"]) == Decimal("7")

    async def test_shipping_step_needs_usd_rate(self, client: AsyncClient, auth_headers, shipment):
        body = {k: v for k, v in SHIPPING_STEP.items() if k != "usd_to_rmb_rate"}
        resp = await client.patch(f"/api/shipments/{shipment['id']}", headers=auth_headers, json=body)
        assert resp.status_code == 400

    async def test_shipping_step_uses_stored_usd_rate(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post("/api/exchange-rates/", headers=auth_headers, json={
            "rate_date": "2025-03-02", "from_currency": "USD", "to_currency": "RMB", "rate_value": "7",
        })
        assert resp.status_code == 201
        body = {k: v for k, v in SHIPPING_STEP.items() if k != "usd_to_rmb_rate"}
        resp = await client.patch(f"/api/shipments/{shipment['id']}", headers=auth_headers, json=body)
        assert resp.status_code == 200
        assert _d(resp.json()["shipping_cost_rmb"]) == Decimal("350")

    async def test_unknown_step_rejected(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.patch(
            f"/api/shipments/{shipment['id']}", headers=auth_headers, json={"step": "teleport"}
        )
        assert resp.status_code == 400

    async def test_customs_and_discount_steps(self, client: AsyncClient, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        await client.patch(url, headers=auth_headers, json=SHIPPING_STEP)
        resp = await client.patch(url, headers=auth_headers, json=_customs_step(shipment))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert _d(data["customs_cost_egp"]) == Decimal("200")
        assert _d(data["takhreeg_cost_egp"]) == Decimal("30")
        assert _d(data["final_total_cost_egp"]) == Decimal("13390")
        assert data["status"] == "ready_for_receipt"

        resp = await client.patch(url, headers=auth_headers, json={
            "step": "discount", "partial_discount_rmb": "100", "discount_notes": "damaged box",
        })
        data = resp.json()
        assert _d(data["discount_egp"]) == Decimal("700")
        assert _d(data["final_total_cost_egp"]) == Decimal("12690")
        # Saving an earlier step never moves status backwards
        resp = await client.patch(url, headers=auth_headers, json=SHIPPING_STEP)
        assert resp.json()["status"] == "ready_for_receipt"

    async def test_goods_step_keeps_missing_pieces(self, client: AsyncClient, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        item_a, item_b = shipment["items"]
        await client.patch(f"{url}/missing-pieces", headers=auth_headers, json={
            "updates": [{"item_id": item_a["id"], "missing_pieces": 10}],
        })
        resp = await client.patch(url, headers=auth_headers, json={
            "step": "goods",
            "shipment_name": "Spring toys (revised)",
            "items": [{k: item[k] for k in ITEM_FIELDS} for item in (item_a, item_b)],
        })
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["shipment_name"] == "Spring toys (revised)"
        assert data["items"][0]["missing_pieces"] == 10


@pytest.mark.api
@pytest.mark.asyncio
class TestMissingPieces:

    async def _full_shipment(self, client, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        await client.patch(url, headers=auth_headers, json=SHIPPING_STEP)
        await client.patch(url, headers=auth_headers, json=_customs_step(shipment))
        return url

    async def test_missing_pieces_priced_at_landed_cost(self, client: AsyncClient, auth_headers, shipment):
        url = await self._full_shipment(client, auth_headers, shipment)
        item_a = shipment["items"][0]
        resp = await client.patch(f"{url}/missing-pieces", headers=auth_headers, json={
            "updates": [{"item_id": item_a["id"], "missing_pieces": 10}],
        })
        assert resp.status_code == 200, resp.text
        data = resp.json()
        # (500 × 7 + 0.5 × 2890) / 100 = 49.45 per piece
        assert _d(data["items"][0]["missing_cost_egp"]) == Decimal("494.50")
        assert _d(data["missing_cost_egp"]) == Decimal("494.50")
        assert _d(data["final_total_cost_egp"]) == Decimal("12895.50")
        # Other cost inputs untouched
        assert _d(data["customs_cost_egp"]) == Decimal("200")
        assert data["status"] == "ready_for_receipt"

    async def test_missing_pieces_clamped(self, client: AsyncClient, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        item_a = shipment["items"][0]
        resp = await client.patch(f"{url}/missing-pieces", headers=auth_headers, json={
            "updates": [{"item_id": item_a["id"], "missing_pieces": 1000}],
        })
        assert resp.json()["items"][0]["missing_pieces"] == 100

    async def test_unknown_item(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.patch(f"/api/shipments/{shipment['id']}/missing-pieces", headers=auth_headers,
                                  json={"updates": [{"item_id": "nope", "missing_pieces": 1}]})
        assert resp.status_code == 400

    async def test_invoice_summary(self, client: AsyncClient, auth_headers, shipment):
        url = await self._full_shipment(client, auth_headers, shipment)
        resp = await client.get(f"{url}/invoice-summary", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_pieces"] == 200
        assert _d(data["shared_extras_egp"]) == Decimal("2890")
        assert [_d(line["unit_cost_egp"]) for line in data["lines"]] == [Decimal("49.45"), Decimal("84.45")]


@pytest.mark.api
@pytest.mark.asyncio
class TestReceiptAndArchive:

    async def test_receipt_books_inventory(self, client: AsyncClient, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        await client.patch(url, headers=auth_headers, json=SHIPPING_STEP)
        await client.patch(url, headers=auth_headers, json=_customs_step(shipment))
        await client.patch(f"{url}/missing-pieces", headers=auth_headers, json={
            "updates": [{"item_id": shipment["items"][0]["id"], "missing_pieces": 10}],
        })
        resp = await client.patch(url, headers=auth_headers, json={
            "step": "receipt", "received_at": "2025-04-01T10:00:00",
        })
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "received"

        resp = await client.get(
            "/api/inventory/", headers=auth_headers, params={"shipment_id": shipment["id"]}
        )
        movements = {m["product_name"]: m for m in resp.json()["items"]}
        assert movements["Plush bear"]["total_pieces_in"] == 90
        assert _d(movements["Plush bear"]["unit_cost_egp"]) == Decimal("49.45")
        assert movements["Cotton towel"]["total_pieces_in"] == 100
        assert movements["Cotton towel"]["source_type"] == "shipment_receipt"

    async def test_archived_shipment_is_locked(self, client: AsyncClient, auth_headers, shipment):
        url = f"/api/shipments/{shipment['id']}"
        resp = await client.delete(url, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "archived"

        resp = await client.patch(url, headers=auth_headers, json=SHIPPING_STEP)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "SHIPMENT_LOCKED"

        # Hidden from the default list, still retrievable
        resp = await client.get("/api/shipments/", headers=auth_headers)
        assert resp.json()["total"] == 0
        resp = await client.get(url, headers=auth_headers)
        assert resp.status_code == 200

    async def test_unknown_shipment(self, client: AsyncClient, auth_headers):
        resp = await client.get("/api/shipments/missing", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.api
@pytest.mark.asyncio
class TestShipmentParties:

    async def test_related_parties(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.get(f"/api/shipments/{shipment['id']}/related-parties", headers=auth_headers)
        data = resp.json()
        assert [s["name"] for s in data["suppliers"]] == ["Yiwu Toys", "Guangzhou Textiles"]
        assert data["shipping_company"]["name"] == "Sea Freight Co"

    async def test_goods_summary_without_payments(self, client: AsyncClient, auth_headers, shipment):
        supplier_a = shipment["setup"]["supplier_a"]
        resp = await client.get(
            f"/api/shipments/{shipment['id']}/suppliers/{supplier_a}/goods-summary", headers=auth_headers
        )
        data = resp.json()
        assert _d(data["supplier_goods_total_rmb"]) == Decimal("500")
        assert _d(data["supplier_paid_rmb"]) == Decimal("0")
        assert _d(data["supplier_remaining_rmb"]) == Decimal("500")

    async def test_goods_summary_unknown_supplier(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.get(
            f"/api/shipments/{shipment['id']}/suppliers/missing/goods-summary", headers=auth_headers
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"
