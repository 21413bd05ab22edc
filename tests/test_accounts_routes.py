from fastapi import status

from tests.conftest import ADMIN_EMAIL, OTHER_USER, auth_headers, make_token, seed_account

BASE = "/v1/accounts"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def test_requires_bearer_token(api_client):
    assert api_client.get(BASE).status_code == status.HTTP_401_UNAUTHORIZED
    resp = api_client.get(BASE, headers={"Authorization": "Bearer garbage"})
    assert resp.json()["detail"] == "invalid_token"


def test_legacy_user_id_claim_is_accepted(api_client, store):
    seed_account(store)
    token = make_token(claim="userId")
    resp = api_client.get(f"{BASE}/acc-1", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == status.HTTP_200_OK


# ---------------------------------------------------------------------------
# Create / read / delete
# ---------------------------------------------------------------------------

def test_create_account_filters_members_and_hides_credential(api_client, store):
    body = {
        "name": "Design team",
        "admin_email": "Owner@Team.test",
        "access_token": "  sk-live  ",
        "allowed_members": ["A@x.test", "a@x.test", "owner@team.test", "not-an-email", "b@x.test"],
        "max_members": 3,
    }
    resp = api_client.post(BASE, json=body, headers=auth_headers())

    assert resp.status_code == status.HTTP_201_CREATED
    data = resp.json()
    assert data["allowed_members"] == ["a@x.test", "b@x.test"]
    assert data["session_status"] == "active"
    assert "access_token" not in data and "user_id" not in data

    row = store.row("accounts", data["id"])
    assert row["access_token"] == "sk-live"
    assert [a["action"] for a in store.rows("audit_logs")] == ["account.create"]


def test_create_account_rejects_too_many_members(api_client, store):
    body = {
        "admin_email": ADMIN_EMAIL,
        "access_token": "tok",
        "allowed_members": ["a@x.test", "b@x.test", "c@x.test"],
        "max_members": 2,
    }
    resp = api_client.post(BASE, json=body, headers=auth_headers())

    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["detail"]["error"] == "too_many_members"
    assert store.rows("accounts") == []


def test_create_account_rejects_empty_token_and_duplicates(api_client):
    resp = api_client.post(BASE, json={"admin_email": ADMIN_EMAIL, "access_token": "   "}, headers=auth_headers())
    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    body = {"admin_email": ADMIN_EMAIL, "access_token": "tok"}
    assert api_client.post(BASE, json=body, headers=auth_headers()).status_code == status.HTTP_201_CREATED
    resp = api_client.post(BASE, json=body, headers=auth_headers())
    assert resp.status_code == status.HTTP_409_CONFLICT
    assert resp.json()["detail"] == "account_already_exists"


def test_accounts_are_scoped_to_their_owner(api_client, store):
    seed_account(store, "mine")
    seed_account(store, "theirs", user_id=OTHER_USER)

    assert api_client.get(f"{BASE}/theirs", headers=auth_headers()).status_code == status.HTTP_404_NOT_FOUND
    assert api_client.delete(f"{BASE}/theirs", headers=auth_headers()).status_code == status.HTTP_404_NOT_FOUND
    resp = api_client.get(f"{BASE}/mine", headers=auth_headers())
    assert resp.json()["id"] == "mine"
    assert "access_token" not in resp.json()


def test_list_accounts_paginates_and_searches(api_client, store):
    for i in range(5):
        seed_account(store, f"acc-{i}", admin_email=f"owner{i}@team.test", created_at=f"2025-01-0{i + 1}T00:00:00+00:00")
    seed_account(store, "other", user_id=OTHER_USER, admin_email="owner9@team.test")

    resp = api_client.get(f"{BASE}?page=2&limit=2", headers=auth_headers())
    data = resp.json()
    assert data["total"] == 5
    assert [a["id"] for a in data["accounts"]] == ["acc-2", "acc-1"]

    resp = api_client.get(f"{BASE}?search=OWNER3", headers=auth_headers())
    assert [a["id"] for a in resp.json()["accounts"]] == ["acc-3"]

    resp = api_client.get(
        f"{BASE}?created_from=2025-01-02T00:00:00Z&created_to=2025-01-03T00:00:00Z&order=asc",
        headers=auth_headers(),
    )
    assert [a["id"] for a in resp.json()["accounts"]] == ["acc-1", "acc-2"]


def test_stats_counts_by_status(api_client, store):
    seed_account(store, "a", admin_email="a@team.test")
    seed_account(store, "b", admin_email="b@team.test", session_status="expired")
    seed_account(store, "c", admin_email="c@team.test", session_status="expired")

    resp = api_client.get(f"{BASE}/stats", headers=auth_headers())

    assert resp.json() == {"total": 3, "by_status": {"active": 1, "expired": 2, "error": 0}}


def test_delete_account_cancels_its_timer(api_client, store, engine):
    seed_account(store)
    engine.registry.add_account("user-1", "acc-1")

    resp = api_client.delete(f"{BASE}/acc-1", headers=auth_headers())

    assert resp.status_code == status.HTTP_200_OK
    assert store.rows("accounts") == []
    assert not engine.scheduler.is_tracked("acc-1")
    assert engine.registry.accounts_by_subscriber["user-1"] == []


# ---------------------------------------------------------------------------
# Desired members
# ---------------------------------------------------------------------------

def test_update_allowed_members(api_client, store):
    seed_account(store, max_members=2)

    resp = api_client.put(
        f"{BASE}/acc-1/allowed-members",
        json={"allowed_members": ["C@x.test", ADMIN_EMAIL, "d@x.test"]},
        headers=auth_headers(),
    )

    assert resp.status_code == status.HTTP_200_OK
    assert store.row("accounts", "acc-1")["allowed_members"] == ["c@x.test", "d@x.test"]

    resp = api_client.put(
        f"{BASE}/acc-1/allowed-members",
        json={"allowed_members": ["a@x.test", "b@x.test", "c@x.test"]},
        headers=auth_headers(),
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert store.row("accounts", "acc-1")["allowed_members"] == ["c@x.test", "d@x.test"]


def test_delete_member_removes_from_allowed(api_client, store, platform):
    seed_account(store, allowed_members=["a@x.test", "b@x.test"])
    member_id = platform.add_member("a@x.test")

    resp = api_client.delete(f"{BASE}/acc-1/members/{member_id}", headers=auth_headers())

    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["allowed_members"] == ["b@x.test"]
    assert platform.emails() == []


def test_delete_member_surfaces_expired_session(api_client, store, platform):
    seed_account(store)
    platform.fail_next("DELETE", "users", 401)

    resp = api_client.delete(f"{BASE}/acc-1/members/user-77", headers=auth_headers())

    assert resp.status_code == status.HTTP_401_UNAUTHORIZED
    assert resp.json()["detail"]["error"] == "session_expired"


# ---------------------------------------------------------------------------
# Reconciliation triggers
# ---------------------------------------------------------------------------

def test_auto_cleanup_returns_outcome(api_client, store, platform):
    seed_account(store, allowed_members=["a@x.test"])
    platform.add_member(ADMIN_EMAIL)
    platform.add_member("a@x.test")
    platform.add_member("x@x.test")

    resp = api_client.post(f"{BASE}/acc-1/auto-cleanup", headers=auth_headers())

    data = resp.json()
    assert data["success"] is True
    assert data["unauthorized_deleted"] == 1
    assert data["members_count"] == 2


def test_auto_cleanup_all_isolates_expired_accounts(api_client, store, platform):
    seed_account(store, "acc-1", upstream_account_id="up-1")
    seed_account(store, "acc-2", admin_email="b@team.test", upstream_account_id="up-2")
    platform.add_member("x@x.test", account="up-2")
    platform.fail_next("GET", "up-1/users", 401)

    resp = api_client.post(f"{BASE}/auto-cleanup-all", headers=auth_headers())

    results = {r["account_id"]: r for r in resp.json()["results"]}
    assert results["acc-1"]["error_kind"] == "session_expired"
    assert results["acc-2"]["unauthorized_deleted"] == 1
    assert store.row("accounts", "acc-1")["session_status"] == "expired"
    assert resp.json()["succeeded"] == 1


def test_process_snapshots_members_without_changes(api_client, store, platform):
    assert api_client.post(f"{BASE}/process", headers=auth_headers()).status_code == status.HTTP_404_NOT_FOUND

    seed_account(store)
    platform.add_member("x@x.test")

    resp = api_client.post(f"{BASE}/process", headers=auth_headers())

    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["results"][0]["members_count"] == 1
    assert platform.calls("DELETE") == []
