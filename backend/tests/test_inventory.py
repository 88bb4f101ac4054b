"""Tests for inventory items, stock queries and the change log."""

import pytest

from livepos.services.inventory_service import MAX_INVENTORY_LOGS, log_change


@pytest.fixture
def flour(run):
    reply = run("inventory:create", {
        "name": "Flour",
        "sku": "fl-001",
        "category": "Dry goods",
        "supplier": "Mill Co",
        "quantity": 10,
        "minThreshold": 5,
        "costPrice": 2,
        "sellingPrice": 3,
    })
    assert reply["ok"], reply
    return reply["item"]


# ============== CRUD ==============

class TestInventoryItems:
    def test_create(self, store, flour):
        assert flour["sku"] == "FL-001"
        assert flour["isArchived"] is False
        assert flour["deliveryDate"] == "2024-03-15"
        log = store.state.inventory_logs[0]
        assert log.field == "created"
        assert log.changed_by == "Admin"

    def test_duplicate_sku(self, run, flour):
        reply = run("inventory:create", {"name": "Other", "sku": "FL-001"})
        assert reply == {"ok": False, "error": 'SKU "FL-001" already exists'}

    def test_blank_numbers_default_to_zero(self, run):
        reply = run("inventory:create", {"name": "Salt", "sku": "S1", "quantity": "", "costPrice": " "})
        assert reply["item"]["quantity"] == 0
        assert reply["item"]["costPrice"] == 0

    def test_negative_quantity_rejected(self, run):
        assert run("inventory:create", {"name": "Salt", "sku": "S1", "quantity": -1})["ok"] is False

    def test_update_logs_each_changed_field(self, run, store, flour):
        reply = run("inventory:update", {"id": flour["id"], "quantity": 4, "supplier": "Mill Co", "notes": "bags"})
        assert reply["ok"], reply
        assert reply["item"]["quantity"] == 4
        fields = [log.field for log in store.state.inventory_logs if log.field != "created"]
        assert sorted(fields) == ["notes", "quantity"]
        quantity_log = next(log for log in store.state.inventory_logs if log.field == "quantity")
        assert quantity_log.old_value == 10
        assert quantity_log.new_value == 4

    def test_update_sku_conflict(self, run, flour):
        run("inventory:create", {"name": "Sugar", "sku": "SU-1"})
        reply = run("inventory:update", {"id": flour["id"], "sku": "su-1"})
        assert reply == {"ok": False, "error": 'SKU "SU-1" already exists'}

    def test_archive_toggles(self, run, flour):
        reply = run("inventory:archive", {"id": flour["id"]})
        assert reply["item"]["isArchived"] is True
        reply = run("inventory:archive", {"id": flour["id"]})
        assert reply["item"]["isArchived"] is False

    def test_delete_removes_logs(self, run, store, flour):
        assert run("inventory:delete", {"id": flour["id"]})["ok"]
        assert store.state.inventory == []
        assert store.state.inventory_logs == []

    def test_staff_cannot_create(self, run, staff):
        reply = run("inventory:create", {"name": "X", "sku": "X"}, staff)
        assert reply == {"ok": False, "error": "Admin only"}


# ============== Queries ==============

class TestInventoryQueries:
    def test_low_and_out_of_stock(self, run, staff, flour):
        run("inventory:create", {"name": "Yeast", "sku": "Y1", "quantity": 0, "minThreshold": 2})
        run("inventory:update", {"id": flour["id"], "quantity": 5})

        low = run("inventory:lowStock", {}, staff)["items"]
        out = run("inventory:outOfStock", {}, staff)["items"]
        assert [i["name"] for i in low] == ["Flour"]
        assert [i["name"] for i in out] == ["Yeast"]

    def test_archived_items_excluded(self, run, staff, flour):
        run("inventory:update", {"id": flour["id"], "quantity": 1})
        run("inventory:archive", {"id": flour["id"]})
        assert run("inventory:lowStock", {}, staff)["items"] == []

    def test_search(self, run, staff, flour):
        run("inventory:create", {"name": "Sugar", "sku": "SU-1", "supplier": "Sweet Ltd"})
        assert [i["name"] for i in run("inventory:search", {"query": "mill"}, staff)["items"]] == ["Flour"]
        assert [i["name"] for i in run("inventory:search", {"query": "su-"}, staff)["items"]] == ["Sugar"]
        assert len(run("inventory:search", {"query": ""}, staff)["items"]) == 2

    def test_search_archived_on_request(self, run, staff, flour):
        run("inventory:archive", {"id": flour["id"]})
        assert run("inventory:search", {"query": "flour"}, staff)["items"] == []
        found = run("inventory:search", {"query": "flour", "includeArchived": True}, staff)["items"]
        assert len(found) == 1

    def test_metrics(self, run, flour):
        metrics = run("inventory:metrics")["metrics"]
        assert metrics["counts"] == {"total": 1, "lowStock": 0, "outOfStock": 0, "archived": 0}
        assert metrics["values"]["cost"] == 20
        assert metrics["values"]["retail"] == 30
        assert metrics["values"]["profit"] == 10
        assert metrics["values"]["marginPercent"] == 50
        assert metrics["categories"]["Dry goods"] == {"count": 1, "value": 20}

    def test_logs_filtered_by_item(self, run, flour):
        other = run("inventory:create", {"name": "Sugar", "sku": "SU-1"})["item"]
        logs = run("inventory:logs", {"itemId": other["id"]})["logs"]
        assert len(logs) == 1
        assert logs[0]["itemId"] == other["id"]
        assert "changedAt" in logs[0]


class TestChangeLogBound:
    def test_log_is_bounded(self, store):
        for i in range(MAX_INVENTORY_LOGS + 50):
            log_change(store.state, "item", "quantity", i, i + 1, "Admin", "2024-03-15T12:00:00.000Z")
        logs = store.state.inventory_logs
        assert len(logs) == MAX_INVENTORY_LOGS
        assert logs[0].old_value == MAX_INVENTORY_LOGS + 49
