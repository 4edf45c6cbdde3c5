"""Shipment payment endpoint tests.

Uses the `shipment` fixture: supplier A owes 500 RMB, supplier B owes
1000 RMB, final total 10500 EGP at purchase rate 7.
"""

from decimal import Decimal
from pathlib import Path

import pytest
from httpx import AsyncClient

from tradeledger.config import settings


def _d(value) -> Decimal:
    return Decimal(str(value))


def _payment(shipment: dict, **overrides) -> dict:
    body = {
        "shipment_id": shipment["id"],
        "party_type": "supplier",
        "party_id": shipment["setup"]["supplier_a"],
        "payment_date": "2025-03-05T10:00:00",
        "payment_currency": "RMB",
        "amount_original": "200",
        "exchange_rate_to_egp": "7",
        "cost_component": "goods_cost",
        "payment_method": "bank_transfer",
    }
    body.update(overrides)
    return body


async def _goods_summary(client, headers, shipment, supplier_key):
    supplier_id = shipment["setup"][supplier_key]
    resp = await client.get(
        f"/api/shipments/{shipment['id']}/suppliers/{supplier_id}/goods-summary", headers=headers
    )
    assert resp.status_code == 200
    return resp.json()


@pytest.mark.api
@pytest.mark.asyncio
class TestRecordPayment:

    async def test_supplier_goods_payment(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["payment_ref"] == "PAY-20250305-001"
        assert _d(data["amount_egp"]) == Decimal("1400")
        assert data["allocation_summary"] == {"exists": False, "count": 0, "total_allocated": "0.00"}

        resp = await client.get(f"/api/shipments/{shipment['id']}", headers=auth_headers)
        detail = resp.json()
        assert _d(detail["total_paid_egp"]) == Decimal("1400")
        assert _d(detail["balance_egp"]) == Decimal("9100")
        assert detail["last_payment_date"].startswith("2025-03-05")

    async def test_egp_payment_uses_purchase_rate(self, client: AsyncClient, auth_headers, shipment):
        body = _payment(shipment, payment_currency="EGP", amount_original="700", exchange_rate_to_egp=None)
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 201, resp.text
        assert _d(resp.json()["exchange_rate_to_egp"]) == Decimal("7")

        summary = await _goods_summary(client, auth_headers, shipment, "supplier_a")
        assert _d(summary["supplier_paid_rmb"]) == Decimal("100")
        assert _d(summary["supplier_remaining_rmb"]) == Decimal("400")

    async def test_missing_rate(self, client: AsyncClient, auth_headers, shipment):
        body = _payment(shipment, exchange_rate_to_egp=None)
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "PAYMENT_RATE_MISSING"

    async def test_supplier_overpay_rejected(self, client: AsyncClient, auth_headers, shipment):
        await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        resp = await client.post(
            "/api/payments/", headers=auth_headers, json=_payment(shipment, amount_original="400")
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "PAYMENT_OVERPAY"
        assert error["details"]["remaining"] == "300.00"

    async def test_party_must_belong_to_shipment(self, client: AsyncClient, auth_headers, shipment):
        body = _payment(shipment, party_id=shipment["setup"]["company"])
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "PARTY_MISMATCH"

    async def test_goods_payment_needs_party(self, client: AsyncClient, auth_headers, shipment):
        body = _payment(shipment, party_type=None, party_id=None)
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "PARTY_REQUIRED"

    async def test_shipping_payment_defaults_to_company(self, client: AsyncClient, auth_headers, shipment):
        await client.patch(f"/api/shipments/{shipment['id']}", headers=auth_headers, json={
            "step": "shipping",
            "commission_rate_percent": "0",
            "shipping_area_sqm": "10",
            "shipping_cost_per_sqm_usd": "5",
            "usd_to_rmb_rate": "7",
            "rmb_to_egp_rate": "7",
        })
        body = _payment(shipment, party_type=None, party_id=None, cost_component="shipping",
                        amount_original="350")
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["party_type"] == "shipping_company"
        assert data["party_id"] == shipment["setup"]["company"]

    async def test_invalid_component(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post(
            "/api/payments/", headers=auth_headers, json=_payment(shipment, cost_component="tips")
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_archived_shipment_rejects_payments(self, client: AsyncClient, auth_headers, shipment):
        await client.delete(f"/api/shipments/{shipment['id']}", headers=auth_headers)
        resp = await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "SHIPMENT_LOCKED"

    async def test_viewer_cannot_see_payments(self, client: AsyncClient, viewer_headers):
        resp = await client.get("/api/payments/", headers=viewer_headers)
        assert resp.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestAutoAllocation:

    def _company_payment(self, shipment, amount="900", **overrides):
        return _payment(
            shipment,
            party_type="shipping_company",
            party_id=shipment["setup"]["company"],
            amount_original=amount,
            auto_allocate=True,
            **overrides,
        )

    async def test_split_across_suppliers(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post(
            "/api/payments/", headers=auth_headers, json=self._company_payment(shipment)
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        amounts = {a["supplier_id"]: _d(a["allocated_amount"]) for a in data["allocations"]}
        assert amounts == {
            shipment["setup"]["supplier_a"]: Decimal("300"),
            shipment["setup"]["supplier_b"]: Decimal("600"),
        }
        assert data["allocation_summary"]["count"] == 2
        assert _d(data["allocation_summary"]["total_allocated"]) == Decimal("900")

        summary = await _goods_summary(client, auth_headers, shipment, "supplier_a")
        assert _d(summary["supplier_paid_rmb"]) == Decimal("300")
        assert _d(summary["supplier_remaining_rmb"]) == Decimal("200")

    async def test_only_rmb_payments_allocate(self, client: AsyncClient, auth_headers, shipment):
        body = self._company_payment(shipment, amount="700", payment_currency="EGP")
        resp = await client.post("/api/payments/", headers=auth_headers, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "AUTO_ALLOCATION_NOT_ELIGIBLE"

    async def test_supplier_payment_cannot_allocate(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post(
            "/api/payments/", headers=auth_headers, json=_payment(shipment, auto_allocate=True)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "AUTO_ALLOCATION_NOT_ELIGIBLE"

    async def test_delete_removes_allocations(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post(
            "/api/payments/", headers=auth_headers, json=self._company_payment(shipment)
        )
        payment_id = resp.json()["id"]

        resp = await client.delete(f"/api/payments/{payment_id}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "allocations_deleted": 2}

        detail = (await client.get(f"/api/shipments/{shipment['id']}", headers=auth_headers)).json()
        assert _d(detail["total_paid_egp"]) == Decimal("0")
        summary = await _goods_summary(client, auth_headers, shipment, "supplier_a")
        assert _d(summary["supplier_paid_rmb"]) == Decimal("0")


@pytest.mark.api
@pytest.mark.asyncio
class TestPaymentQueries:

    async def test_list_date_to_is_inclusive(self, client: AsyncClient, auth_headers, shipment):
        await client.post("/api/payments/", headers=auth_headers,
                          json=_payment(shipment, payment_date="2025-03-05T23:30:00"))
        await client.post("/api/payments/", headers=auth_headers,
                          json=_payment(shipment, payment_date="2025-03-06T08:00:00", amount_original="50"))

        resp = await client.get("/api/payments/", headers=auth_headers, params={"date_to": "2025-03-05"})
        assert [p["payment_date"][:10] for p in resp.json()] == ["2025-03-05"]

        resp = await client.get("/api/payments/", headers=auth_headers, params={"shipment_id": shipment["id"]})
        assert len(resp.json()) == 2

    async def test_stats(self, client: AsyncClient, auth_headers, shipment):
        await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        resp = await client.get("/api/payments/stats", headers=auth_headers)
        data = resp.json()
        assert _d(data["total_cost_egp"]) == Decimal("10500")
        assert _d(data["total_paid_egp"]) == Decimal("1400")
        assert _d(data["total_balance_egp"]) == Decimal("9100")
        assert data["payment_count"] == 1
        assert data["last_payment"]["payment_ref"] == "PAY-20250305-001"


@pytest.mark.api
@pytest.mark.asyncio
class TestAttachments:

    async def test_multipart_upload_and_download(self, client: AsyncClient, auth_headers, shipment):
        form = {k: v for k, v in _payment(shipment).items() if v is not None}
        resp = await client.post(
            "/api/payments/",
            headers=auth_headers,
            data=form,
            files={"attachment": ("receipt.pdf", b"%PDF-1.4 receipt", "application/pdf")},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["attachment_original_name"] == "receipt.pdf"
        assert data["attachment_mime_type"] == "application/pdf"
        assert data["attachment_size"] == len(b"%PDF-1.4 receipt")
        assert data["attachment_uploaded_at"] is not None

        resp = await client.get(f"/api/payments/{data['id']}/attachment", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 receipt"

        resp = await client.get(f"/api/payments/{data['id']}/attachment/preview", headers=auth_headers)
        assert resp.headers["content-disposition"].startswith("inline")

    async def test_rejected_payment_discards_attachment(self, client: AsyncClient, auth_headers, shipment):
        form = {k: v for k, v in _payment(shipment, amount_original="999999").items() if v is not None}
        resp = await client.post(
            "/api/payments/",
            headers=auth_headers,
            data=form,
            files={"attachment": ("receipt.png", b"\x89PNG receipt", "image/png")},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "PAYMENT_OVERPAY"

        stored = Path(settings.upload_dir) / "payments"
        assert not stored.exists() or list(stored.iterdir()) == []

    async def test_unsupported_attachment_type(self, client: AsyncClient, auth_headers, shipment):
        form = {k: v for k, v in _payment(shipment).items() if v is not None}
        resp = await client.post(
            "/api/payments/",
            headers=auth_headers,
            data=form,
            files={"attachment": ("run.sh", b"echo hi", "text/x-shellscript")},
        )
        assert resp.status_code == 400

    async def test_finalize_attachment_metadata(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        payment_id = resp.json()["id"]
        resp = await client.patch(f"/api/payments/{payment_id}/attachment", headers=auth_headers, json={
            "attachment_url": "https://files.example.com/r.jpg",
            "attachment_original_name": "r.jpg",
            "attachment_mime_type": "image/jpeg",
            "attachment_size": 1234,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["attachment_url"] == "https://files.example.com/r.jpg"
        # Amounts are never touched by the attachment update
        assert _d(data["amount_egp"]) == Decimal("1400")

    async def test_no_attachment(self, client: AsyncClient, auth_headers, shipment):
        resp = await client.post("/api/payments/", headers=auth_headers, json=_payment(shipment))
        resp = await client.get(f"/api/payments/{resp.json()['id']}/attachment", headers=auth_headers)
        assert resp.status_code == 404
