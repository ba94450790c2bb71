"""Test complete affiliate commission flow against a running server."""
import asyncio
import httpx
import uuid
from datetime import datetime, timezone

BASE_URL = "http://localhost:8000/api/v1"


def step(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


async def main():
    async with httpx.AsyncClient(timeout=30.0) as client:
        # ==================== STEP 1: Store ====================
        step("STEP 1: Create Store (maturity 0 days)")

        store_resp = await client.post(
            f"{BASE_URL}/stores",
            json={"name": "Loja Teste", "affiliate_commission_maturity_days": 0}
        )
        store = store_resp.json()
        store_id = store["id"]
        print(f"Store: {store['name']} (maturity {store['affiliate_commission_maturity_days']} days)")

        # ==================== STEP 2: Affiliate ====================
        step("STEP 2: Register Affiliate & Invite")

        affiliate_resp = await client.post(
            f"{BASE_URL}/affiliates",
            json={
                "name": "Maria Souza",
                "email": f"maria.{uuid.uuid4().hex[:8]}@test.com",
                "pix_key": "maria@pix.com",
            }
        )
        affiliate = affiliate_resp.json()
        affiliate_id = affiliate["id"]

        link_resp = await client.post(
            f"{BASE_URL}/store-affiliates",
            json={
                "store_id": store_id,
                "affiliate_id": affiliate_id,
                "default_commission_type": "percentage",
                "default_commission_value": "5",
            }
        )
        link_id = link_resp.json()["id"]
        accept_resp = await client.post(f"{BASE_URL}/store-affiliates/{link_id}/accept")
        print(f"Affiliate: {affiliate['name']} link status: {accept_resp.json()['status']}")

        # ==================== STEP 3: Rules & Coupon ====================
        step("STEP 3: Category Rule (10%) & Coupon")

        rule_resp = await client.post(
            f"{BASE_URL}/store-affiliates/{link_id}/rules",
            json={
                "applies_to": "CATEGORY",
                "target": "Pizzas",
                "commission_type": "PERCENTAGE",
                "commission_value": "10",
            }
        )
        print(f"Rule: {rule_resp.status_code} {rule_resp.json().get('target_key')}")

        coupon_resp = await client.post(
            f"{BASE_URL}/coupons",
            json={"store_id": store_id, "code": "MARIA10", "discount_type": "PERCENTAGE", "discount_value": "10"}
        )
        coupon_id = coupon_resp.json()["id"]
        await client.put(f"{BASE_URL}/coupons/{coupon_id}/affiliate", json={"store_affiliate_id": link_id})
        print("Coupon MARIA10 linked")

        # ==================== STEP 4: Order ====================
        step("STEP 4: Order Created With Coupon")

        order_id = str(uuid.uuid4())
        event = {
            "order_id": order_id,
            "store_id": store_id,
            "order_number": "PED-0001",
            "status": "pendente",
            "coupon_code": "maria10",
            "items": [
                {"product_id": "P1", "product_name": "Pizza Calabresa", "category": "Pizzas",
                 "quantity": 1, "unit_price": "50.00", "line_discount": "5.00"},
                {"product_id": "P2", "product_name": "Refrigerante", "category": "Bebidas",
                 "quantity": 2, "unit_price": "8.00", "line_discount": "1.60"},
            ],
        }
        order_resp = await client.post(f"{BASE_URL}/order-events", json=event)
        result = order_resp.json()
        if not result.get("earnings"):
            print(f"ERROR: no earning recorded: {order_resp.text}")
            return
        earning = result["earnings"][0]
        print(f"Earning: R$ {earning['commission_amount']} ({earning['status']})")

        # ==================== STEP 5: Delivery ====================
        step("STEP 5: Order Delivered")

        await client.post(
            f"{BASE_URL}/order-events",
            json={
                "order_id": order_id,
                "store_id": store_id,
                "status": "entregue",
                "delivered_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        summary = (await client.get(
            f"{BASE_URL}/earnings/summary", params={"affiliate_id": affiliate_id, "store_id": store_id}
        )).json()
        print(f"Available: R$ {summary['available_for_withdrawal']}  Maturing: R$ {summary['maturing']}")

        # ==================== STEP 6: Withdrawal ====================
        step("STEP 6: Withdrawal Request & Settlement")

        withdrawal_resp = await client.post(
            f"{BASE_URL}/withdrawals",
            json={"affiliate_id": affiliate_id, "store_id": store_id}
        )
        if withdrawal_resp.status_code != 201:
            print(f"ERROR requesting withdrawal: {withdrawal_resp.text}")
            return
        withdrawal = withdrawal_resp.json()
        print(f"Requested: R$ {withdrawal['amount']} to {withdrawal['pix_key']}")

        duplicate_resp = await client.post(
            f"{BASE_URL}/withdrawals",
            json={"affiliate_id": affiliate_id, "store_id": store_id, "amount": "1.00"}
        )
        print(f"Second request while pending: {duplicate_resp.status_code} (expected 409)")

        settle_resp = await client.post(
            f"{BASE_URL}/withdrawals/{withdrawal['id']}/settle",
            json={"outcome": "PAID", "payment_proof": "PIX-E2E-0001"}
        )
        settlement = settle_resp.json()
        print(f"Settled: {settlement['request']['status']}")
        print(f"Payout instruction: {settlement['payout_instruction']}")

        balance = (await client.get(
            f"{BASE_URL}/withdrawals/balance", params={"affiliate_id": affiliate_id, "store_id": store_id}
        )).json()
        print(f"Available after payout: R$ {balance['available']}")

        step("FLOW COMPLETE")


if __name__ == "__main__":
    asyncio.run(main())
