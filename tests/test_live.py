from tests.conftest import ADMIN_EMAIL, make_token, seed_account


def test_subscribe_then_receive_account_update(api_client, store, platform, engine):
    seed_account(store, allowed_members=["a@x.test"])
    platform.add_member(ADMIN_EMAIL)
    platform.add_member("a@x.test")
    platform.add_member("intruder@x.test")

    with api_client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "subscribe", "token": make_token()})
        subscribed = ws.receive_json()
        update = ws.receive_json()

        assert subscribed["type"] == "subscribed"
        assert "timestamp" in subscribed
        assert update["type"] == "account_update"
        assert update["account_id"] == "acc-1"
        assert update["data"]["members_count"] == 2
        assert update["data"]["unauthorized_deleted"] == 1
        admin = update["data"]["members"][0]
        assert (admin["id"], admin["email"], admin["is_admin"]) == ("admin", ADMIN_EMAIL, True)

        ws.send_json({"type": "unsubscribe", "token": make_token()})
        assert ws.receive_json()["type"] == "unsubscribed"

    assert engine.registry.runs == {}


def test_bad_frames_are_answered_with_errors(api_client):
    with api_client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        first = ws.receive_json()
        ws.send_json({"type": "subscribe"})
        second = ws.receive_json()
        ws.send_json({"type": "refresh", "token": make_token()})
        third = ws.receive_json()

    assert (first["type"], first["message"]) == ("error", "invalid_json")
    assert second["message"] == "invalid_message"
    assert third["message"] == "not_subscribed"
