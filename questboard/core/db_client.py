"""SQLite persistence gateway with owner-scoped CRUD operations.

Every read and write on user data is filtered by ``owner_id``; there is no
unscoped write path. Updates are single ``UPDATE ... RETURNING *`` statements so a
concurrent writer can never observe or leave a half-applied row.
"""

import asyncio
import json
import logging
import re
import threading
import uuid
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from questboard.core.config import Constants, settings
from questboard.core.errors import NotFoundError, PersistenceFailureError


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_SORT_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(ASC|DESC)?$", re.IGNORECASE)

_BOOLEAN_FIELDS = {"is_main", "completed", "verified"}

_RESOURCE_NAMES = {
    "quests": "Quest",
    "tasks": "Task",
    "retry_allowances": "Retry allowance",
}


class RecordNotFoundError(NotFoundError):
    """No row matched the id and owner."""


class DatabaseError(PersistenceFailureError):
    """The storage engine failed while executing a query."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection is one of the known tables."""
    if not _IDENTIFIER.match(collection) or collection not in _RESOURCE_NAMES:
        msg = f"Invalid collection name: {collection}"
        raise ValueError(msg)


def _validate_field_names(fields: Any) -> None:
    for field in fields:
        if not _IDENTIFIER.match(field):
            msg = f"Invalid field name: {field}"
            raise ValueError(msg)


def _not_found(collection: str) -> RecordNotFoundError:
    return RecordNotFoundError(f"{_RESOURCE_NAMES.get(collection, 'Record')} not found")


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _encode_value(value: Any) -> Any:  # noqa: ANN401
    """Convert a Python value into something SQLite can bind."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def _decode_row(row: aiosqlite.Row) -> dict[str, Any]:
    """Convert a SQLite row into a plain dict, restoring boolean columns."""
    record = dict(row)
    for key in _BOOLEAN_FIELDS & record.keys():
        record[key] = bool(record[key])
    return record


def _where_clause(owner_id: str, filters: dict[str, Any] | None) -> tuple[str, list[Any]]:
    conditions = ["owner_id = ?"]
    params: list[Any] = [owner_id]
    if filters:
        _validate_field_names(filters)
        for field, value in filters.items():
            conditions.append(f"{field} = ?")
            params.append(_encode_value(value))
    return " AND ".join(conditions), params


def _order_clause(sort: str) -> str:
    match = _SORT_PATTERN.match(sort.strip()) if sort else None
    if not match:
        if sort:
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "created_at DESC"
    direction = (match.group(2) or "ASC").upper()
    return f"{match.group(1)} {direction}"


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    cached_conn = _db_connections.get(cache_key)
    if cached_conn is not None:
        return cached_conn

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        try:
            await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": str(path)})
        except (aiosqlite.Error, ValueError) as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from questboard.core import schema

    await schema.init_db(db_path=db_path)


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id and timestamps."""
    _validate_collection_name(collection)
    _validate_field_names(data)

    now = _now()
    row = {"id": uuid.uuid4().hex, "created_at": now, "updated_at": now, **data}
    columns = ", ".join(row)
    placeholders = ", ".join("?" for _ in row)
    values = [_encode_value(v) for v in row.values()]

    try:
        conn = await get_connection()
        query = f"INSERT INTO {collection} ({columns}) VALUES ({placeholders}) RETURNING *"  # noqa: S608 - names are validated
        rows = await conn.execute_fetchall(query, values)
        created = next(iter(rows))
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to create record in {collection}") from e

    logger.info("Created record", extra={"collection": collection, "record_id": row["id"]})
    return _decode_row(created)


async def get_record(*, collection: str, record_id: str, owner_id: str) -> dict[str, Any]:
    """Fetch a single record by id and owner, raising RecordNotFoundError if absent."""
    _validate_collection_name(collection)

    try:
        conn = await get_connection()
        query = f"SELECT * FROM {collection} WHERE id = ? AND owner_id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id, owner_id))
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to get record from {collection}") from e

    if row is None:
        raise _not_found(collection)
    return _decode_row(row)


async def list_records(
    *,
    collection: str,
    owner_id: str,
    filters: dict[str, Any] | None = None,
    sort: str = "created_at DESC",
    page: int = 1,
    per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT,
) -> list[dict[str, Any]]:
    """List one page of an owner's records with optional equality filters and sorting."""
    _validate_collection_name(collection)
    where_clause, params = _where_clause(owner_id, filters)
    order_clause = _order_clause(sort)

    try:
        conn = await get_connection()
        query = f"SELECT * FROM {collection} WHERE {where_clause} ORDER BY {order_clause}, id LIMIT ? OFFSET ?"  # noqa: S608 - names are validated
        offset = (page - 1) * per_page
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to list records from {collection}") from e

    return [_decode_row(row) for row in rows]


async def list_all_records(
    *,
    collection: str,
    owner_id: str,
    filters: dict[str, Any] | None = None,
    sort: str = "created_at DESC",
) -> list[dict[str, Any]]:
    """List every matching owner record, walking pages until a short one comes back."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await list_records(
            collection=collection,
            owner_id=owner_id,
            filters=filters,
            sort=sort,
            page=page,
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        records.extend(batch)
        if len(batch) < Constants.DEFAULT_PER_PAGE_LIMIT:
            return records
        page += 1


async def update_record(
    *,
    collection: str,
    record_id: str,
    owner_id: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Apply one conditional UPDATE keyed on (id, owner_id) and return the new row.

    Raises:
        RecordNotFoundError: If no row matched (absent, foreign, or deleted concurrently)
        DatabaseError: If the statement failed
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    _validate_field_names(data)

    payload = {**data, "updated_at": _now()}
    set_clause = ", ".join(f"{key} = ?" for key in payload)
    values = [_encode_value(v) for v in payload.values()]

    try:
        conn = await get_connection()
        query = f"UPDATE {collection} SET {set_clause} WHERE id = ? AND owner_id = ? RETURNING *"  # noqa: S608 - names are validated
        rows = list(await conn.execute_fetchall(query, [*values, record_id, owner_id]))
        row = rows[0] if rows else None
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to update record in {collection}") from e

    if row is None:
        raise _not_found(collection)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return _decode_row(row)


async def delete_record(*, collection: str, record_id: str, owner_id: str) -> None:
    """Delete a record by id and owner, raising RecordNotFoundError if absent."""
    _validate_collection_name(collection)

    try:
        conn = await get_connection()
        query = f"DELETE FROM {collection} WHERE id = ? AND owner_id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id, owner_id))
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise DatabaseError(f"Failed to delete record from {collection}") from e

    if cursor.rowcount == 0:
        raise _not_found(collection)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def delete_records(*, collection: str, owner_id: str, filters: dict[str, Any]) -> int:
    """Delete every owner record matching the filters and return how many went."""
    _validate_collection_name(collection)
    where_clause, params = _where_clause(owner_id, filters)

    try:
        conn = await get_connection()
        cursor = await conn.execute(f"DELETE FROM {collection} WHERE {where_clause}", params)  # noqa: S608 - names are validated
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("delete_records_failed", extra={"collection": collection, "error": str(e)})
        raise DatabaseError(f"Failed to delete records from {collection}") from e

    return cursor.rowcount


async def _ensure_allowance(conn: aiosqlite.Connection, *, owner_id: str, period: str, initial: int) -> None:
    now = _now()
    await conn.execute(
        "INSERT INTO retry_allowances (id, owner_id, period, remaining, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?) ON CONFLICT (owner_id, period) DO NOTHING",
        (uuid.uuid4().hex, owner_id, period, initial, now, now),
    )


async def get_allowance(*, owner_id: str, period: str, initial: int) -> int:
    """Return the remaining allowance for a period without consuming it."""
    try:
        conn = await get_connection()
        cursor = await conn.execute(
            "SELECT remaining FROM retry_allowances WHERE owner_id = ? AND period = ?",
            (owner_id, period),
        )
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        logger.error("get_allowance_failed", extra={"owner_id": owner_id, "period": period, "error": str(e)})
        raise DatabaseError("Failed to read retry allowance") from e

    return initial if row is None else row["remaining"]


async def consume_allowance(*, owner_id: str, period: str, initial: int) -> int | None:
    """Atomically take one unit of allowance.

    The check and the decrement are a single conditional UPDATE, so concurrent
    callers can never drive the counter below zero.

    Returns:
        The remaining allowance after consumption, or None if nothing was left
    """
    try:
        conn = await get_connection()
        await _ensure_allowance(conn, owner_id=owner_id, period=period, initial=initial)
        rows = list(
            await conn.execute_fetchall(
                "UPDATE retry_allowances SET remaining = remaining - 1, updated_at = ? "
                "WHERE owner_id = ? AND period = ? AND remaining > 0 RETURNING remaining",
                (_now(), owner_id, period),
            )
        )
        row = rows[0] if rows else None
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("consume_allowance_failed", extra={"owner_id": owner_id, "period": period, "error": str(e)})
        raise DatabaseError("Failed to consume retry allowance") from e

    return None if row is None else row["remaining"]


async def refund_allowance(*, owner_id: str, period: str, initial: int) -> int:
    """Give back one unit of allowance, never exceeding the initial amount."""
    try:
        conn = await get_connection()
        await _ensure_allowance(conn, owner_id=owner_id, period=period, initial=initial)
        rows = list(
            await conn.execute_fetchall(
                "UPDATE retry_allowances SET remaining = MIN(remaining + 1, ?), updated_at = ? "
                "WHERE owner_id = ? AND period = ? RETURNING remaining",
                (initial, _now(), owner_id, period),
            )
        )
        row = rows[0]
        await conn.commit()
    except aiosqlite.Error as e:
        logger.error("refund_allowance_failed", extra={"owner_id": owner_id, "period": period, "error": str(e)})
        raise DatabaseError("Failed to refund retry allowance") from e

    return row["remaining"]
