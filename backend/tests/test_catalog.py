"""Tests for settings, categories, menu items and staff accounts."""

from livepos.core.security import verify_password


# ============== Settings ==============

class TestSettings:
    def test_partial_update(self, run, store):
        assert run("settings:update", {"taxPercent": 5})["ok"]
        settings = store.state.settings
        assert settings.tax_percent == 5
        assert settings.service_charge_percent == 0
        assert settings.currency == "AED"

    def test_negative_percent_rejected(self, run, store):
        assert run("settings:update", {"serviceChargePercent": -1})["ok"] is False
        assert store.state.settings.service_charge_percent == 0


# ============== Categories ==============

class TestCategories:
    def test_create_appends_with_next_sort_order(self, run):
        reply = run("category:create", {"name": "Desserts"})
        assert reply["category"]["sortOrder"] == 3

    def test_update(self, run, store):
        assert run("category:update", {"id": "cat-main", "name": "Mains", "sortOrder": 9})["ok"]
        category = next(c for c in store.state.categories if c.id == "cat-main")
        assert category.name == "Mains"
        assert category.sort_order == 9

    def test_delete_detaches_menu_items(self, run, store):
        assert run("category:delete", {"id": "cat-soft"})["ok"]
        assert [c.id for c in store.state.categories] == ["cat-main"]
        assert store.state.find_menu_item("item-cola").category_id == ""
        assert store.state.logs[0].payload["detachedItems"] == 1

    def test_delete_missing(self, run):
        assert run("category:delete", {"id": "nope"}) == {"ok": False, "error": "Category not found"}


# ============== Menu ==============

class TestMenu:
    def test_create(self, run, store):
        reply = run("menu:create", {"name": "Tea", "price": 4.5, "categoryId": "cat-soft"})
        item = reply["item"]
        assert item["isActive"] is True
        assert item["unavailable"] is False
        assert item["createdAt"] == "2024-03-15T12:00:00.000Z"
        assert store.state.find_menu_item(item["id"]).price == 4.5

    def test_create_with_unknown_category(self, run):
        reply = run("menu:create", {"name": "Tea", "price": 4, "categoryId": "cat-ghost"})
        assert reply == {"ok": False, "error": "Category not found"}

    def test_update_only_sent_fields(self, run, store):
        run("menu:update", {"id": "item-cola", "description": "Chilled"})
        item = store.state.find_menu_item("item-cola")
        assert item.description == "Chilled"
        assert item.price == 6
        assert item.name == "Cola"

    def test_deactivated_item_cannot_be_ordered(self, run):
        run("menu:update", {"id": "item-cola", "isActive": False})
        reply = run("order:create", {
            "items": [{"itemId": "item-cola", "qty": 1}],
            "customerName": "A",
            "tableNumber": "1",
        })
        assert reply == {"ok": False, "error": "Cola is not available"}

    def test_delete(self, run, store):
        assert run("menu:delete", {"id": "item-cola"})["ok"]
        assert store.state.menu == []


# ============== Staff ==============

class TestStaff:
    def test_create_hashes_password(self, run, store):
        reply = run("staff:create", {"username": "ana", "password": "s3cret", "role": "kitchen"})
        assert reply["staff"]["role"] == "kitchen"
        assert reply["staff"]["status"] == "active"
        assert "passwordHash" not in reply["staff"]

        account = store.state.staff[0]
        assert account.password_hash != "s3cret"
        assert verify_password("s3cret", account.password_hash)
        assert "s3cret" not in str(store.state.logs[0].payload)

    def test_duplicate_username_case_insensitive(self, run):
        run("staff:create", {"username": "Ana", "password": "x"})
        reply = run("staff:create", {"username": "ana", "password": "y"})
        assert reply == {"ok": False, "error": "Username already exists"}

    def test_invalid_role(self, run):
        assert run("staff:create", {"username": "x", "password": "y", "role": "chef"})["ok"] is False

    def test_set_status_and_role(self, run, store, staff):
        assert run("staff:setStatus", {"id": staff.subject, "status": "paused"})["ok"]
        assert run("staff:setRole", {"id": staff.subject, "role": "manager"})["ok"]
        account = store.state.find_staff(staff.subject)
        assert account.status == "paused"
        assert account.role == "manager"

    def test_delete_keeps_order_history(self, run, store, staff, place_order):
        order = place_order(caller=staff)
        assert run("staff:delete", {"id": staff.subject})["ok"]
        assert store.state.find_staff(staff.subject) is None
        assert store.state.find_order(order["id"]).created_by_staff_id == staff.subject

    def test_delete_missing(self, run):
        assert run("staff:delete", {"id": "nope"}) == {"ok": False, "error": "Staff not found"}
