"""Tests for the live WebSocket channel: auth, snapshots, commands and broadcasts."""

import pytest
from starlette.websockets import WebSocketDisconnect

from livepos.core.security import create_access_token
from livepos.services.dispatcher import SNAPSHOT_EVENT


def receive_until(ws, event):
    """Read messages until one with ``event`` arrives; return it."""
    for _ in range(20):
        message = ws.receive_json()
        if message["event"] == event:
            return message
    raise AssertionError(f"no {event} message received")


def connect_and_sync(ws):
    """Consume the auth confirmation and the initial snapshot."""
    auth = ws.receive_json()
    assert auth["event"] == "auth_success"
    snapshot = ws.receive_json()
    assert snapshot["event"] == SNAPSHOT_EVENT
    return auth, snapshot


class TestWebSocketAuth:
    def test_query_token(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            auth, snapshot = connect_and_sync(ws)
            assert auth["data"]["role"] == "admin"
            assert snapshot["data"]["menu"][0]["name"] == "Cola"
            assert snapshot["timestamp"].endswith("Z")

    def test_first_message_auth(self, client, admin_token):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "auth", "token": admin_token})
            auth, _ = connect_and_sync(ws)
            assert auth["data"]["id"] == "admin"

    def test_cookie_auth(self, client, admin_token):
        client.cookies.set("access_token", admin_token)
        try:
            with client.websocket_connect("/ws") as ws:
                auth, _ = connect_and_sync(ws)
                assert auth["data"]["role"] == "admin"
        finally:
            client.cookies.clear()

    def test_invalid_token_closed(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws?token=bogus") as ws:
                ws.receive_json()
        assert exc.value.code == 4001

    def test_wrong_first_message_closed(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws") as ws:
                ws.send_json({"event": "order:create", "data": {}})
                ws.receive_json()
        assert exc.value.code == 4001

    def test_token_for_unknown_role_closed(self, client):
        token = create_access_token(data={"sub": "x", "role": "owner"})
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws?token={token}") as ws:
                ws.receive_json()
        assert exc.value.code == 4001


class TestWebSocketCommands:
    def test_command_reply_carries_ref(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "category:create", "data": {"name": "Desserts"}, "ref": "r-1"})
            reply = receive_until(ws, "reply")
            assert reply["ref"] == "r-1"
            assert reply["data"]["ok"] is True
            assert reply["data"]["category"]["name"] == "Desserts"

    def test_snapshot_precedes_reply(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "category:create", "data": {"name": "Soup"}, "ref": "r-2"})
            snapshot = ws.receive_json()
            assert snapshot["event"] == SNAPSHOT_EVENT
            assert any(c["name"] == "Soup" for c in snapshot["data"]["categories"])
            assert ws.receive_json()["event"] == "reply"

    def test_error_reply(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "order:delete", "data": {"id": "missing"}, "ref": 7})
            reply = receive_until(ws, "reply")
            assert reply["ref"] == 7
            assert reply["data"] == {"ok": False, "error": "Order not found"}

    def test_invalid_json(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_text("{oops")
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["data"]["error"] == "Invalid JSON"

    def test_ping(self, client, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "ping", "timestamp": 123, "ref": "p"})
            pong = ws.receive_json()
            assert pong["event"] == "pong"
            assert pong["ref"] == "p"
            assert pong["data"]["timestamp"] == 123

    def test_staff_cannot_run_admin_command(self, client, app, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "staff:create", "data": {"username": "kit", "password": "pw"}, "ref": 1})
            staff_id = receive_until(ws, "reply")["data"]["staff"]["id"]

        token = create_access_token(data={"sub": staff_id, "role": "staff", "username": "kit"})
        with client.websocket_connect(f"/ws?token={token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "revenue:reset", "ref": 2})
            reply = receive_until(ws, "reply")
            assert reply["data"] == {"ok": False, "error": "Admin only"}
        assert app.state.store.state.revenue.adjustments == []


class TestBroadcast:
    def test_mutation_reaches_every_client(self, client, app, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as first, \
                client.websocket_connect(f"/ws?token={admin_token}") as second:
            connect_and_sync(first)
            connect_and_sync(second)
            assert app.state.connections.connection_count == 2

            first.send_json({
                "event": "order:create",
                "data": {"items": [{"itemId": "item-cola", "qty": 2}], "customerName": "A", "tableNumber": "3"},
                "ref": "o1",
            })
            order_id = receive_until(first, "reply")["data"]["order"]["id"]

            snapshot = second.receive_json()
            assert snapshot["event"] == SNAPSHOT_EVENT
            assert snapshot["data"]["orders"][0]["id"] == order_id
            assert snapshot["data"]["revenue"]["total"] == 12
            kitchen = second.receive_json()
            assert kitchen["event"] == "kitchen:newOrder"
            assert kitchen["data"] == {"orderId": order_id}

    def test_disconnect_unregisters(self, client, app, admin_token):
        with client.websocket_connect(f"/ws?token={admin_token}") as ws:
            connect_and_sync(ws)
            ws.send_json({"event": "ping"})
            ws.receive_json()
        client.get("/health")
        assert app.state.connections.connection_count == 0
