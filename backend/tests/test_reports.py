"""Tests for the CSV report and export commands."""

import csv
from io import StringIO


def parse_csv(text):
    return list(csv.DictReader(StringIO(text)))


class TestOrdersExport:
    def test_export_all(self, run, clock, place_order):
        first = place_order(qty=1)
        clock.advance(minutes=5)
        run("order:setStatus", {"id": first["id"], "status": "done"})
        run("receipt:create", {"orderId": first["id"], "paymentMethod": "card"})
        place_order(qty=2)

        reply = run("report:exportCSV", {})
        assert reply["ok"], reply
        assert reply["count"] == 2
        assert reply["filename"] == "orders_2024-03-15.csv"

        rows = parse_csv(reply["csv"])
        assert rows[0]["orderId"] == first["id"]
        assert rows[0]["status"] == "done"
        assert rows[0]["prepSeconds"] == "300"
        assert rows[0]["total"] == "6.00"
        assert rows[0]["paymentMethod"] == "card"
        assert rows[1]["doneAt"] == ""
        assert rows[1]["paymentMethod"] == ""

    def test_date_range_is_inclusive_of_end_day(self, run, clock, place_order):
        place_order()
        clock.advance(days=1)
        second = place_order()
        clock.advance(days=1)
        place_order()

        reply = run("report:exportCSV", {"startDate": "2024-03-16", "endDate": "2024-03-16"})
        assert reply["count"] == 1
        assert parse_csv(reply["csv"])[0]["orderId"] == second["id"]

    def test_quotes_names_with_commas(self, run, make_staff, place_order):
        cashier = make_staff("smith, j")
        place_order(caller=cashier)
        text = run("report:exportCSV", {})["csv"]
        assert '"smith, j"' in text
        assert parse_csv(text)[0]["createdByUsername"] == "smith, j"

    def test_start_after_end_rejected(self, run):
        reply = run("report:exportCSV", {"startDate": "2024-03-20", "endDate": "2024-03-10"})
        assert reply == {"ok": False, "error": "startDate must be before endDate"}

    def test_bad_date_rejected(self, run):
        reply = run("report:exportCSV", {"startDate": "yesterday"})
        assert reply == {"ok": False, "error": "startDate must be an ISO date"}

    def test_admin_only(self, run, staff):
        assert run("report:exportCSV", {}, staff) == {"ok": False, "error": "Admin only"}


class TestEntityExports:
    def test_customers(self, run, place_order):
        place_order(customerPhone="0501", marketingOptIn=True)
        reply = run("export:customers")
        rows = parse_csv(reply["csv"])
        assert rows[0]["phone"] == "0501"
        assert rows[0]["marketingOptIn"] == "yes"
        assert rows[0]["totalSpent"] == "6.00"
        assert reply["filename"] == "customers_2024-03-15.csv"

    def test_inventory(self, run):
        run("inventory:create", {"name": "Rice", "sku": "r1", "quantity": 3, "costPrice": 1.5})
        rows = parse_csv(run("export:inventory")["csv"])
        assert rows[0]["sku"] == "R1"
        assert rows[0]["costPrice"] == "1.50"
        assert rows[0]["isArchived"] == "no"

    def test_staff_performance(self, run, make_staff, place_order):
        cashier = make_staff("kim")
        place_order(qty=2, caller=cashier)
        rows = parse_csv(run("export:staffPerformance")["csv"])
        assert rows == [{
            "staffId": cashier.subject,
            "username": "kim",
            "ordersCreated": "1",
            "totalRevenue": "12.00",
            "completedOrders": "0",
            "avgPrepTime": "0",
        }]

    def test_promo_usage(self, run, place_order):
        run("promo:create", {"code": "P1", "type": "fixed", "value": 1, "maxUses": 10})
        place_order(promoCode="P1")
        rows = parse_csv(run("export:promoUsage")["csv"])
        assert rows[0]["code"] == "P1"
        assert rows[0]["uses"] == "1"
        assert rows[0]["maxUses"] == "10"
        assert rows[0]["maxDiscount"] == ""
