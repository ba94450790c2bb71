"""HTTP API flow: configuration, order events, earnings and withdrawals."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest_asyncio


API = "/api/v1"


def items_payload():
    return [
        {"product_id": "PIZZA-1", "product_name": "Pizza Calabresa", "category": "Pizzas",
         "quantity": 1, "unit_price": "50.00", "line_discount": "5.00"},
        {"product_id": "SODA-1", "product_name": "Refrigerante", "category": "Bebidas",
         "quantity": 2, "unit_price": "8.00", "line_discount": "1.60"},
    ]


@pytest_asyncio.fixture
async def setup(client):
    """Store, active affiliate link with 10% default and coupon MARIA10, all through the API."""
    store = (await client.post(f"{API}/stores", json={"name": "Loja API", "affiliate_commission_maturity_days": 7})).json()
    affiliate = (await client.post(
        f"{API}/affiliates",
        json={"name": "Maria Souza", "email": "Maria@Example.com", "pix_key": "maria@pix.com"},
    )).json()
    link = (await client.post(
        f"{API}/store-affiliates",
        json={
            "store_id": store["id"],
            "affiliate_id": affiliate["id"],
            "default_commission_type": "percentage",
            "default_commission_value": "10",
        },
    )).json()
    await client.post(f"{API}/store-affiliates/{link['id']}/accept")
    coupon = (await client.post(f"{API}/coupons", json={"store_id": store["id"], "code": "maria10"})).json()
    await client.put(f"{API}/coupons/{coupon['id']}/affiliate", json={"store_affiliate_id": link["id"]})
    return {"store": store, "affiliate": affiliate, "link": link, "coupon": coupon}


async def delivered_order(client, store_id, days_ago=10):
    now = datetime.now(timezone.utc)
    response = await client.post(f"{API}/order-events", json={
        "order_id": str(uuid.uuid4()),
        "store_id": store_id,
        "order_number": "PED-API",
        "status": "entregue",
        "coupon_code": "MARIA10",
        "created_at": (now - timedelta(days=days_ago + 1)).isoformat(),
        "delivered_at": (now - timedelta(days=days_ago)).isoformat(),
        "items": items_payload(),
    })
    assert response.status_code == 200
    return response.json()


class TestConfiguration:
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert "version" in response.json()

    async def test_affiliate_email_lowercased_and_unique(self, client, setup):
        assert setup["affiliate"]["email"] == "maria@example.com"

        response = await client.post(
            f"{API}/affiliates",
            json={"name": "Maria Dois", "email": "maria@example.com"},
        )
        assert response.status_code == 400

    async def test_unknown_affiliate(self, client):
        response = await client.get(f"{API}/affiliates/{uuid.uuid4()}")

        assert response.status_code == 404

    async def test_link_is_active_with_default(self, client, setup):
        response = await client.get(f"{API}/store-affiliates/{setup['link']['id']}")

        body = response.json()
        assert body["status"] == "ACTIVE"
        assert body["default_commission_type"] == "PERCENTAGE"
        assert Decimal(body["default_commission_value"]) == Decimal("10")

    async def test_invalid_percentage_rule(self, client, setup):
        response = await client.post(
            f"{API}/store-affiliates/{setup['link']['id']}/rules",
            json={"applies_to": "CATEGORY", "target": "Pizzas", "commission_type": "PERCENTAGE",
                  "commission_value": "150"},
        )

        assert response.status_code == 400

    async def test_negative_maturity_rejected(self, client, setup):
        response = await client.put(f"{API}/stores/{setup['store']['id']}/maturity", json={"maturity_days": -1})

        assert response.status_code == 422

    async def test_resolution_preview(self, client, setup):
        link_id = setup["link"]["id"]
        await client.post(
            f"{API}/store-affiliates/{link_id}/rules",
            json={"applies_to": "product", "target": "SODA-1", "commission_type": "fixed", "commission_value": "2"},
        )

        response = await client.post(
            f"{API}/store-affiliates/{link_id}/resolve-preview",
            json={"items": items_payload()},
        )

        assert response.status_code == 200
        body = response.json()
        sources = {i["product_id"]: i["commission_source"] for i in body["items"]}
        assert sources == {"PIZZA-1": "DEFAULT", "SODA-1": "SPECIFIC_PRODUCT"}
        assert Decimal(body["total_commission"]) == Decimal("8.50")


class TestOrderFlow:
    async def test_order_event_records_earning(self, client, setup):
        body = await delivered_order(client, setup["store"]["id"])

        assert body["attributed"] is True
        assert body["status"] == "DELIVERED"
        earning = body["earnings"][0]
        assert Decimal(earning["commission_amount"]) == Decimal("5.94")

        detail = (await client.get(f"{API}/earnings/{earning['id']}")).json()
        assert detail["bucket"] == "AVAILABLE"
        assert detail["countdown"]["is_available"] is True
        assert len(detail["items"]) == 2

    async def test_status_only_event_for_unknown_store(self, client):
        response = await client.post(f"{API}/order-events", json={
            "order_id": str(uuid.uuid4()),
            "store_id": str(uuid.uuid4()),
            "status": "DELIVERED",
        })

        assert response.status_code == 404

    async def test_summary(self, client, setup):
        await delivered_order(client, setup["store"]["id"])
        await delivered_order(client, setup["store"]["id"], days_ago=1)

        response = await client.get(
            f"{API}/earnings/summary",
            params={"affiliate_id": setup["affiliate"]["id"], "store_id": setup["store"]["id"]},
        )

        summary = response.json()
        assert Decimal(summary["earned"]) == Decimal("11.88")
        assert Decimal(summary["available_for_withdrawal"]) == Decimal("5.94")
        assert Decimal(summary["maturing"]) == Decimal("5.94")
        assert summary["counts"]["total"] == 2

    async def test_earning_list(self, client, setup):
        await delivered_order(client, setup["store"]["id"])

        response = await client.get(f"{API}/earnings", params={"affiliate_id": setup["affiliate"]["id"]})

        body = response.json()
        assert body["total"] == 1
        assert body["page"] == 1


class TestWithdrawalFlow:
    async def test_request_settle_and_balance(self, client, setup):
        await delivered_order(client, setup["store"]["id"])
        ids = {"affiliate_id": setup["affiliate"]["id"], "store_id": setup["store"]["id"]}

        balance = (await client.get(f"{API}/withdrawals/balance", params=ids)).json()
        assert Decimal(balance["available"]) == Decimal("5.94")

        created = await client.post(f"{API}/withdrawals", json=ids)
        assert created.status_code == 201
        request = created.json()
        assert Decimal(request["amount"]) == Decimal("5.94")

        duplicate = await client.post(f"{API}/withdrawals", json={**ids, "amount": "1.00"})
        assert duplicate.status_code == 409

        settled = await client.post(
            f"{API}/withdrawals/{request['id']}/settle",
            json={"outcome": "paid", "payment_proof": "E2E-1"},
        )
        assert settled.status_code == 200
        body = settled.json()
        assert body["request"]["status"] == "PAID"
        assert body["payout_instruction"]["pix_key"] == "maria@pix.com"
        assert body["payout_instruction"]["currency"] == "BRL"
        assert Decimal(body["payout_instruction"]["amount"]) == Decimal("5.94")

        balance = (await client.get(f"{API}/withdrawals/balance", params=ids)).json()
        assert Decimal(balance["available"]) == Decimal("0")
        assert balance["has_pending_request"] is False

    async def test_insufficient_balance(self, client, setup):
        response = await client.post(
            f"{API}/withdrawals",
            json={"affiliate_id": setup["affiliate"]["id"], "store_id": setup["store"]["id"], "amount": "10.00"},
        )

        assert response.status_code == 422

    async def test_coupon_locked_after_earning(self, client, setup):
        await delivered_order(client, setup["store"]["id"])

        response = await client.delete(f"{API}/coupons/{setup['coupon']['id']}/affiliate")

        assert response.status_code == 409
