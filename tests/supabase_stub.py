from __future__ import annotations

import copy
import re
from typing import Any, Callable, Dict, List, Optional


class _DummyResponse:
    data: List[Any] = []
    count: Optional[int] = None


class SupabaseStub:  # noqa: D101
    def table(self, *_a, **_k):
        return self
    select = insert = update = delete = order = limit = range = in_ = gt = lt = gte = lte = like = ilike = neq = is_ = eq = table
    async def execute(self, *_, **__):
        return _DummyResponse()
    async def aclose(self):
        return None


# ---------------------------------------------------------------------------
# In-memory PostgREST imitation – enough of the query builder for the helpers
# in seatsync.utils.database.
# ---------------------------------------------------------------------------


class _Response:
    def __init__(self, data: list, count: Optional[int] = None):
        self.data = data
        self.count = count


def _like(pattern: str, flags: int = 0) -> Callable[[Any], bool]:
    regex = re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$", flags)
    return lambda value: value is not None and bool(regex.match(str(value)))


class _Query:
    def __init__(self, db: "MemorySupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._slice: Optional[tuple[int, int]] = None
        self._count: Optional[str] = None

    # operations ---------------------------------------------------------
    def select(self, _fields: str = "*", count: Optional[str] = None):
        self._op, self._count = "select", count
        return self

    def insert(self, data: dict):
        self._op, self._payload = "insert", data
        return self

    def update(self, values: dict):
        self._op, self._payload = "update", values
        return self

    def delete(self):
        self._op = "delete"
        return self

    # filters ------------------------------------------------------------
    def _where(self, column: str, check: Callable[[Any], bool]):
        self._filters.append(lambda row: check(row.get(column)))
        return self

    def eq(self, column, value):
        return self._where(column, lambda v: v == value)

    def neq(self, column, value):
        return self._where(column, lambda v: v != value)

    def in_(self, column, values):
        return self._where(column, lambda v: v in values)

    def is_(self, column, value):
        expected = None if value in (None, "null") else value
        return self._where(column, lambda v: v is expected or v == expected)

    def gt(self, column, value):
        return self._where(column, lambda v: v is not None and v > value)

    def lt(self, column, value):
        return self._where(column, lambda v: v is not None and v < value)

    def gte(self, column, value):
        return self._where(column, lambda v: v is not None and v >= value)

    def lte(self, column, value):
        return self._where(column, lambda v: v is not None and v <= value)

    def like(self, column, pattern):
        return self._where(column, _like(pattern))

    def ilike(self, column, pattern):
        return self._where(column, _like(pattern, re.IGNORECASE))

    # modifiers ----------------------------------------------------------
    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def limit(self, n: int):
        self._slice = (0, n)
        return self

    def range(self, start: int, end: int):
        self._slice = (start, end - start + 1)
        return self

    async def execute(self):
        rows = self._db.tables.setdefault(self._table, [])
        if self._op == "insert":
            return _Response([copy.deepcopy(self._db._insert(self._table, self._payload))])

        matched = [row for row in rows if all(f(row) for f in self._filters)]
        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return _Response(copy.deepcopy(matched))
        if self._op == "delete":
            self._db.tables[self._table] = [row for row in rows if row not in matched]
            return _Response(copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        total = len(matched)
        if self._slice:
            start, size = self._slice
            matched = matched[start:start + size]
        return _Response(copy.deepcopy(matched), total if self._count else None)


class MemorySupabase:
    """Dict-of-lists database with a unique (user_id, admin_email) on ``accounts``."""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def _insert(self, table: str, row: dict) -> dict:
        rows = self.tables.setdefault(table, [])
        if table == "accounts" and any(
            r["user_id"] == row["user_id"] and r["admin_email"] == row["admin_email"] for r in rows
        ):
            raise Exception('duplicate key value violates unique constraint "accounts_user_admin_key"')
        stored = copy.deepcopy(row)
        rows.append(stored)
        return stored

    def rows(self, table: str) -> List[dict]:
        return self.tables.get(table, [])

    def row(self, table: str, pk: str) -> Optional[dict]:
        return next((r for r in self.rows(table) if r.get("id") == pk), None)

    async def aclose(self):
        return None
