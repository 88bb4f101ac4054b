"""Tests for receipts, charges and the revenue ledger."""


# ============== Charges & receipts ==============

class TestReceipts:
    def test_discounted_charges_scenario(self, run):
        steak = run("menu:create", {"name": "Steak", "price": 10})["item"]
        soup = run("menu:create", {"name": "Soup", "price": 5})["item"]
        run("settings:update", {"taxPercent": 5, "serviceChargePercent": 10})
        run("promo:create", {"code": "TEN", "type": "percentage", "value": 10})
        order = run("order:create", {
            "items": [{"itemId": steak["id"], "qty": 2}, {"itemId": soup["id"], "qty": 1}],
            "customerName": "Ada",
            "tableNumber": "2",
            "promoCode": "TEN",
        })["order"]
        assert order["subtotal"] == 25
        assert order["discount"] == 2.5

        charges = run("receipt:preview", {"orderId": order["id"]})["charges"]
        assert charges["taxableAmount"] == 22.5
        assert charges["tax"] == 1.125
        assert charges["serviceCharge"] == 2.25
        assert charges["grandTotal"] == 25.875

    def test_preview_charges(self, run, place_order):
        run("settings:update", {"taxPercent": 10, "serviceChargePercent": 5})
        run("promo:create", {"code": "FIVE", "type": "fixed", "value": 5})
        order = place_order(qty=5, promoCode="FIVE")

        reply = run("receipt:preview", {"orderId": order["id"]})
        assert reply["ok"], reply
        charges = reply["charges"]
        assert charges["subtotal"] == 30
        assert charges["discount"] == 5
        assert charges["taxableAmount"] == 25
        assert charges["tax"] == 2.5
        assert charges["serviceCharge"] == 1.25
        assert charges["grandTotal"] == 28.75
        assert charges["currency"] == "AED"

    def test_preview_text(self, run, place_order):
        run("settings:update", {"taxPercent": 10, "serviceChargePercent": 4.5})
        order = place_order(qty=4, promoCode=None)
        preview = run("receipt:preview", {"orderId": order["id"]})["preview"]
        assert "RECEIPT" in preview
        assert "Table: 4" in preview
        assert "4 x 6.00" in preview
        assert "TOTAL" in preview
        assert preview.splitlines()[0] == "=" * 40

    def test_tax_and_service_on_discounted_amount(self, run, place_order):
        run("settings:update", {"taxPercent": 10, "serviceChargePercent": 4.5})
        run("promo:create", {"code": "SIXTH", "type": "percentage", "value": 16.6667, "maxDiscount": 5})
        order = place_order(qty=5, promoCode="SIXTH")
        charges = run("receipt:preview", {"orderId": order["id"]})["charges"]
        assert charges["taxableAmount"] == 25
        assert charges["tax"] == 2.5
        assert charges["serviceCharge"] == 1.125
        assert charges["grandTotal"] == 28.625

    def test_create_receipt_records_payment(self, run, store, staff, place_order):
        order = place_order(qty=2)
        reply = run("receipt:create", {"orderId": order["id"], "paymentMethod": "card"}, staff)
        assert reply["ok"], reply
        receipt = reply["receipt"]
        assert receipt["amount"] == 12
        assert receipt["paymentMethod"] == "card"
        assert receipt["createdBy"] == "cashier1"
        assert store.state.metrics.payment_methods["card"] == 12
        assert store.state.receipts[0].order_id == order["id"]

    def test_order_paid_once(self, run, place_order):
        order = place_order()
        run("receipt:create", {"orderId": order["id"], "paymentMethod": "cash"})
        reply = run("receipt:create", {"orderId": order["id"], "paymentMethod": "cash"})
        assert reply == {"ok": False, "error": "Order already paid"}

    def test_unknown_payment_method(self, run, place_order):
        order = place_order()
        reply = run("receipt:create", {"orderId": order["id"], "paymentMethod": "crypto"})
        assert reply["ok"] is False

    def test_unknown_order(self, run):
        reply = run("receipt:preview", {"orderId": "missing"})
        assert reply == {"ok": False, "error": "Order not found"}


# ============== Revenue ledger ==============

class TestRevenue:
    def test_adjust(self, run, store):
        reply = run("revenue:adjust", {"amount": -2.5, "reason": "refund"})
        assert reply == {"ok": True, "total": -2.5}
        adjustment = store.state.revenue.adjustments[0]
        assert adjustment.amount == -2.5
        assert adjustment.reason == "refund"
        assert adjustment.by == "Admin"

    def test_reset_keeps_previous_total(self, run, store, place_order):
        place_order(qty=3)
        assert run("revenue:reset")["ok"]
        ledger = store.state.revenue
        assert ledger.total == 0
        assert ledger.adjustments[0].reason == "RESET"
        assert ledger.adjustments[0].amount == 0
        assert ledger.adjustments[0].previous_total == 18

    def test_reason_required(self, run):
        assert run("revenue:adjust", {"amount": 5})["ok"] is False

    def test_staff_cannot_adjust(self, run, staff):
        reply = run("revenue:adjust", {"amount": 5, "reason": "x"}, staff)
        assert reply == {"ok": False, "error": "Admin only"}

    def test_ledger_follows_order_deltas(self, run, store, place_order):
        first = place_order(qty=2)
        place_order(qty=1)
        run("order:update", {"id": first["id"], "items": [{"itemId": "item-cola", "qty": 5}]})
        run("revenue:adjust", {"amount": 4, "reason": "tip"})
        assert store.state.revenue.total == 30 + 6 + 4
