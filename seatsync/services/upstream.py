"""HTTP client for the upstream platform's account-administration API."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from seatsync.models import ErrorKind, Member
from seatsync.services.fingerprint import build_headers
from seatsync.settings import EngineSettings
from seatsync.utils.logger import logger

MEMBERS_PAGE_SIZE = 25


class UpstreamError(Exception):
    """Base exception for upstream API failures."""

    kind = ErrorKind.upstream

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        full_message = message
        if body:
            full_message = f"{message} - Response: {body[:500]}"
        super().__init__(full_message)
        self.status_code = status_code
        self.body = body


class SessionExpiredError(UpstreamError):
    """401 – the stored credential is no longer valid. Never retried."""

    kind = ErrorKind.session_expired


class InvalidAccountError(UpstreamError):
    """422 – the upstream rejects the account id (or the token for it). Never retried."""

    kind = ErrorKind.invalid_account


class RateLimitedError(UpstreamError):
    kind = ErrorKind.rate_limited


class UpstreamNetworkError(UpstreamError):
    kind = ErrorKind.network


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _page_items(data: Any) -> list[dict[str, Any]]:
    """Pages come back as ``items``; some older endpoints used ``users``/``data``."""
    if not isinstance(data, dict):
        return []
    return data.get("items") or data.get("users") or data.get("data") or []


class UpstreamClient:
    """Retrying client for ``{base}/accounts/...``.

    One ``httpx.AsyncClient`` is shared across calls but headers are built per
    request, so two consecutive calls never present the same fingerprint by
    construction.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or EngineSettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.upstream_base_url,
                timeout=self.settings.upstream_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        credential: str,
        *,
        account_id: str | None = None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        """Issue one logical call with up to ``max_attempts`` tries.

        Backoff is linear (``attempt * backoff_seconds``). 429, network errors
        and unexpected statuses are retried; 401 and 422 raise immediately.
        """
        attempts = self.settings.max_attempts if retry else 1
        last_error: UpstreamError = UpstreamError("upstream_request_not_attempted")

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.request(
                    method,
                    path,
                    params=params,
                    json=json,
                    headers=build_headers(credential, account_id),
                )
            except httpx.TransportError as exc:
                last_error = UpstreamNetworkError(f"network_error: {exc!r}")
            else:
                status = response.status_code
                if response.is_success:
                    return _decode(response)
                if status == 401:
                    raise SessionExpiredError("HTTP 401: session expired, re-login required", 401)
                if status == 422:
                    raise InvalidAccountError(
                        "HTTP 422: account id rejected by upstream", 422, response.text
                    )
                if status == 429:
                    last_error = RateLimitedError("HTTP 429: rate limited", 429)
                else:
                    last_error = UpstreamError(f"HTTP {status}", status, response.text)

            if attempt < attempts:
                delay = self.settings.backoff_seconds * attempt
                logger.warning(
                    f"Upstream {method} {path} failed ({last_error.kind.value}), "
                    f"retry {attempt}/{attempts - 1} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise last_error

    async def fetch_members(self, account_id: str, credential: str) -> list[Member]:
        """Return every member of ``account_id``, following offset pagination."""
        members: list[Member] = []
        offset = 0
        while True:
            data = await self.request(
                "GET",
                f"/accounts/{account_id}/users",
                credential,
                account_id=account_id,
                params={"offset": offset, "limit": MEMBERS_PAGE_SIZE, "query": ""},
            )
            items = _page_items(data)
            members.extend(Member.from_upstream(item) for item in items)
            offset += len(items)
            total = data.get("total") if isinstance(data, dict) else None
            if len(items) < MEMBERS_PAGE_SIZE or (isinstance(total, int) and offset >= total):
                return members

    async def delete_member(self, account_id: str, member_id: str, credential: str) -> None:
        await self.request(
            "DELETE",
            f"/accounts/{account_id}/users/{member_id}",
            credential,
            account_id=account_id,
        )
        logger.info("member.deleted", extra={"upstream_account_id": account_id, "member_id": member_id})

    async def resolve_account_id(self, credential: str) -> str:
        """Look up the account a credential belongs to (``GET /accounts/check``)."""
        data = await self.request("GET", "/accounts/check", credential) or {}
        account = data.get("account") or {}
        if account.get("account_id"):
            return str(account["account_id"])
        accounts = data.get("accounts") or []
        if accounts and accounts[0].get("account_id"):
            return str(accounts[0]["account_id"])
        raise UpstreamError("No account id found in session response")
