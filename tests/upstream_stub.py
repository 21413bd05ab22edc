"""In-process imitation of the upstream account-administration API."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Dict, List, Optional

import httpx

BASE_URL = "https://upstream.test/backend-api"
NETWORK_ERROR = 0


def ago(minutes: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


class FakePlatform:
    def __init__(self, account_id: str = "up-1"):
        self.account_id = account_id
        self.members: Dict[str, List[dict]] = {}
        self.invites: Dict[str, List[dict]] = {}
        self.requests: List[httpx.Request] = []
        self._failures: Dict[tuple[str, str], List[int]] = {}
        self._ids = count(1)

    # -- seeding ---------------------------------------------------------
    def add_member(self, email: str, *, account: Optional[str] = None, minutes_ago: float = 60, member_id: Optional[str] = None) -> str:
        member_id = member_id or f"user-{next(self._ids)}"
        self.members.setdefault(account or self.account_id, []).append(
            {"id": member_id, "email": email, "role": "standard-user", "created_time": ago(minutes_ago)}
        )
        return member_id

    def add_invite(self, email: str, *, account: Optional[str] = None, minutes_ago: Optional[float] = 60) -> None:
        invite: dict = {"email_address": email, "role": "standard-user"}
        if minutes_ago is not None:
            invite["created_time"] = ago(minutes_ago)
        self.invites.setdefault(account or self.account_id, []).append(invite)

    def fail_next(self, method: str, fragment: str, *statuses: int) -> None:
        """Answer the next matching calls with ``statuses`` (``NETWORK_ERROR`` raises)."""
        self._failures.setdefault((method, fragment), []).extend(statuses)

    # -- inspection ------------------------------------------------------
    def emails(self, account: Optional[str] = None) -> List[str]:
        return [m["email"] for m in self.members.get(account or self.account_id, [])]

    def invited(self, account: Optional[str] = None) -> List[str]:
        return [i["email_address"] for i in self.invites.get(account or self.account_id, [])]

    def calls(self, method: str, fragment: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- routing ---------------------------------------------------------
    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/backend-api")

        for (method, fragment), queued in self._failures.items():
            if queued and request.method == method and fragment in path:
                code = queued.pop(0)
                if code == NETWORK_ERROR:
                    raise httpx.ConnectError("connection refused", request=request)
                return httpx.Response(code, json={"detail": f"forced {code}"})

        parts = path.strip("/").split("/")
        if parts == ["accounts", "check"]:
            return httpx.Response(200, json={"account": {"account_id": self.account_id}})
        if len(parts) < 3 or parts[0] != "accounts":
            return httpx.Response(404, json={"detail": "not found"})

        account, resource = parts[1], parts[2]
        if resource == "users":
            return self._users(request, account, parts[3] if len(parts) > 3 else None)
        if resource == "invites":
            return self._invites(request, account)
        return httpx.Response(404, json={"detail": "not found"})

    def _page(self, request: httpx.Request, rows: List[dict]) -> httpx.Response:
        offset = int(request.url.params.get("offset", 0))
        limit = int(request.url.params.get("limit", 25))
        return httpx.Response(200, json={"items": rows[offset:offset + limit], "total": len(rows)})

    def _users(self, request: httpx.Request, account: str, member_id: Optional[str]) -> httpx.Response:
        rows = self.members.setdefault(account, [])
        if request.method == "GET":
            return self._page(request, rows)
        if request.method == "DELETE" and member_id:
            if not any(m["id"] == member_id for m in rows):
                return httpx.Response(404, json={"detail": "no such user"})
            self.members[account] = [m for m in rows if m["id"] != member_id]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405)

    def _invites(self, request: httpx.Request, account: str) -> httpx.Response:
        rows = self.invites.setdefault(account, [])
        if request.method == "GET":
            return self._page(request, rows)
        body: Any = json.loads(request.content or b"{}")
        if request.method == "POST":
            now = datetime.now(timezone.utc).isoformat()
            for email in body["email_addresses"]:
                self.invites[account] = [i for i in self.invites[account] if i["email_address"] != email]
                self.invites[account].append({"email_address": email, "role": body["role"], "created_time": now})
            return httpx.Response(200, json={"account_invites": body["email_addresses"]})
        if request.method == "DELETE":
            email = body["email_address"]
            self.invites[account] = [i for i in rows if i["email_address"] != email]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405)
