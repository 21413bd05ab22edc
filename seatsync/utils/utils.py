"""Misc cross-cutting helpers."""

from __future__ import annotations

from typing import Iterable
from uuid import uuid4


def generate_uuid() -> str:
    return str(uuid4())


def normalize_email(value: str | None) -> str:
    """Lower-case and strip an email address; ``None`` becomes ``""``."""
    return (value or "").strip().lower()


def filter_desired_members(emails: Iterable[str] | None, admin_email: str | None) -> list[str]:
    """Normalise a desired-member list.

    Drops blanks, anything without an ``@``, the admin address and duplicates.
    Order of first appearance is kept so the dashboard shows what was typed.

    Examples:
        >>> filter_desired_members(["A@x.com", "a@x.com", "admin@x.com", "nope"], "Admin@x.com")
        ['a@x.com']
    """
    admin = normalize_email(admin_email)
    seen: dict[str, None] = {}
    for raw in emails or []:
        email = normalize_email(raw)
        if not email or "@" not in email or email == admin:
            continue
        seen.setdefault(email, None)
    return list(seen)
