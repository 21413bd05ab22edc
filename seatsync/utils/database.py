from supabase import AsyncClient
from typing import Optional
from .logger import logger


def _apply_filters(query, filters: dict | None):
    """Translate a ``{column: value | (operator, value)}`` dict onto a PostgREST query.

    Supported operators: 'eq', 'in', 'gt', 'lt', 'gte', 'lte', 'like', 'ilike', 'neq', 'is',
    'between' (inclusive ``(low, high)`` pair).
    A bare value means equality.
    """
    for key, condition in (filters or {}).items():
        if isinstance(condition, tuple):
            operator, value = condition
            if operator == "in":
                query = query.in_(key, value)
            elif operator == "is":
                query = query.is_(key, value)
            elif operator == "gt":
                query = query.gt(key, value)
            elif operator == "lt":
                query = query.lt(key, value)
            elif operator == "gte":
                query = query.gte(key, value)
            elif operator == "lte":
                query = query.lte(key, value)
            elif operator == "like":
                query = query.like(key, value)
            elif operator == "ilike":
                query = query.ilike(key, value)
            elif operator == "neq":
                query = query.neq(key, value)
            elif operator == "between":
                low, high = value
                query = query.gte(key, low).lte(key, high)
            else:
                query = query.eq(key, value)
        else:
            query = query.eq(key, condition)
    return query


async def insert_data(
    supabase: AsyncClient,
    table_name: str,
    data: dict,
):
    """Insert one row and return the stored rows, or ``"duplicate"`` on a unique violation."""
    try:
        response = await supabase.table(table_name).insert(data).execute()
        return getattr(response, "data", None) or []
    except Exception as e:
        # supabase errors are badly structured and must cast to string and parsed
        if "duplicate" in str(e).lower():
            return "duplicate"
        logger.error(f"Error during insert to {table_name}: {e}")
        raise


async def query_data(
    supabase: AsyncClient,
    table_name: str,
    filters: dict = None,
    order_by: tuple = None,
    select_fields: str = "*",
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    count: Optional[str] = None,
):
    """
    Query a Supabase table with dynamic filters, ordering, paging and count.

    :param table_name: Name of the table to query.
    :param filters: Dictionary where keys are column names and values are filter conditions.
                     Use a tuple (operator, value) for non-equality filters.
    :param order_by: Tuple (column_name, desc) where desc=True means descending order.
    :param select_fields: Fields to select (default is "*").
    :param limit: Optional integer to limit the number of results.
    :param offset: Optional row offset; requires ``limit``.
    :param count: Optional string to specify count method (e.g., 'exact').
    :return: Query result from Supabase.
    """
    query = supabase.table(table_name).select(select_fields, count=count)
    query = _apply_filters(query, filters)

    if order_by:
        column, desc = order_by
        query = query.order(column, desc=desc)

    if limit and offset:
        query = query.range(offset, offset + limit - 1)
    elif limit:
        query = query.limit(limit)

    return await query.execute()


async def update_data(
    supabase: AsyncClient,
    table_name: str,
    *,
    update_values: dict,
    filters: dict,
    error_message: str = "Update failed",
):
    """Update rows matching ``filters``. Errors are logged and re-raised."""
    try:
        query = supabase.table(table_name).update(update_values)
        query = _apply_filters(query, filters)
        await query.execute()
    except Exception as e:
        logger.error(f"{error_message} ({table_name}): {e}")
        raise


async def delete_data(
    supabase: AsyncClient,
    table_name: str,
    filters: dict,
) -> list:
    """Delete rows matching ``filters`` and return the deleted rows."""
    query = _apply_filters(supabase.table(table_name).delete(), filters)
    response = await query.execute()
    return getattr(response, "data", None) or []


async def query_one(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
):
    """Return the first (or *None*) row that matches the filters."""
    resp = await query_data(
        supabase,
        table_name,
        filters=match or {},
        order_by=order_by,
        select_fields=select_fields,
        limit=1,
    )
    rows = getattr(resp, "data", None) or []
    return rows[0] if rows else None


async def query_many(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
    limit: int | None = None,
):
    """Return a list of rows that match the filters (empty list if none)."""
    resp = await query_data(
        supabase,
        table_name,
        filters=match or {},
        order_by=order_by,
        select_fields=select_fields,
        limit=limit,
    )
    return getattr(resp, "data", None) or []
