"""Currencies known to a group, with group 0 holding the templates."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass, replace
from enum import StrEnum

from schrevind.database import Database, DatabaseError


class CurrencyStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


@dataclass
class Currency:
    """A currency as configured for one group."""

    id: int = 0
    group_id: int = 0
    currency: str = ""
    name: str = ""
    decimal_places: int = 0
    status: str = ""
    created_at: int = 0
    updated_at: int = 0


_COLUMNS = "id, group_id, currency, name, decimal_places, status, created_at, updated_at"

_SORT_COLUMNS = {
    "": "currency",
    "Currency": "currency",
    "Name": "name",
    "DecimalPlaces": "decimal_places",
}

_COPY_TEMPLATES = """
INSERT INTO currencies (
  group_id, currency, name, decimal_places, status, created_at, updated_at
)
SELECT ?, currency, name, decimal_places, status, ?, ?
  FROM currencies
 WHERE group_id = 0;
"""


def is_valid_currency_code(code: str) -> bool:
    """Tell whether ``code`` is exactly three uppercase ASCII letters."""
    return len(code) == 3 and all("A" <= ch <= "Z" for ch in code)


def _normalize(currency: Currency) -> Currency:
    code = currency.currency.strip().upper()
    name = currency.name.strip()
    status = str(currency.status).strip()

    if not is_valid_currency_code(code):
        raise ValueError("currency must be a 3-letter uppercase code")
    if currency.group_id < 0:
        raise ValueError("group_id must be >= 0")
    if currency.decimal_places < 0:
        raise ValueError("decimal_places must be >= 0")

    now = int(time.time())
    return replace(
        currency,
        currency=code,
        name=name,
        status=status,
        created_at=currency.created_at or now,
        updated_at=now,
    )


def _check_group_id(group_id: int) -> None:
    if group_id < 0:
        raise ValueError("group_id must be >= 0")


def _fetch_one(db: Database, query: str, params: tuple, context: str) -> Currency | None:
    try:
        row = db.sql.execute(query, params).fetchone()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return Currency(*row) if row is not None else None


def _execute(db: Database, query: str, params: tuple, context: str) -> sqlite3.Cursor:
    try:
        return db.sql.execute(query, params)
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc


def create_currency(db: Database, currency: Currency) -> Currency:
    """Insert ``currency``; return the stored, normalized record with its ID."""
    db.sql
    if currency is None:
        raise ValueError("currency is missing")

    normalized = _normalize(currency)
    cursor = _execute(
        db,
        "INSERT INTO currencies (group_id, currency, name, decimal_places, status, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?);",
        (
            normalized.group_id,
            normalized.currency,
            normalized.name,
            normalized.decimal_places,
            normalized.status,
            normalized.created_at,
            normalized.updated_at,
        ),
        "create currency",
    )
    return replace(normalized, id=cursor.lastrowid)


def update_currency(db: Database, currency: Currency) -> Currency:
    """Update the currency with the record's ID in its group; return the normalized record."""
    db.sql
    if currency is None:
        raise ValueError("currency is missing")
    if currency.id <= 0:
        raise ValueError("id must be > 0")

    normalized = _normalize(currency)
    _execute(
        db,
        """
UPDATE currencies
   SET currency = ?,
       name = ?,
       decimal_places = ?,
       status = ?,
       updated_at = ?
 WHERE id = ?
   AND group_id = ?;
""",
        (
            normalized.currency,
            normalized.name,
            normalized.decimal_places,
            normalized.status,
            normalized.updated_at,
            normalized.id,
            normalized.group_id,
        ),
        "update currency",
    )
    return normalized


def get_currency_by_id_and_group_id(db: Database, currency_id: int, group_id: int) -> Currency | None:
    """Return the currency with ``currency_id`` in ``group_id``, or None."""
    db.sql
    if currency_id <= 0:
        raise ValueError("id must be > 0")
    _check_group_id(group_id)
    return _fetch_one(
        db,
        f"SELECT {_COLUMNS} FROM currencies WHERE id = ? AND group_id = ? LIMIT 1;",
        (currency_id, group_id),
        "get currency by id",
    )


def get_currency_by_code_and_group_id(db: Database, code: str, group_id: int) -> Currency | None:
    """Return the currency with ISO ``code`` in ``group_id``, or None."""
    db.sql
    _check_group_id(group_id)
    code = code.strip().upper()
    if not is_valid_currency_code(code):
        raise ValueError("currency must be a 3-letter uppercase code")
    return _fetch_one(
        db,
        f"SELECT {_COLUMNS} FROM currencies WHERE currency = ? AND group_id = ? LIMIT 1;",
        (code, group_id),
        "get currency by currency",
    )


def list_currencies_by_group_id(
    db: Database,
    group_id: int,
    limit: int,
    offset: int,
    sort_by: str = "",
    status: str = "",
) -> list[Currency]:
    """Return one page of a group's currencies, optionally filtered by status."""
    db.sql
    _check_group_id(group_id)
    if limit < 0:
        raise ValueError("limit must be >= 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")

    sort_column = _SORT_COLUMNS.get(sort_by.strip())
    if sort_column is None:
        raise ValueError("list currencies: invalid sort")

    status = str(status).strip()
    query = f"SELECT {_COLUMNS} FROM currencies WHERE group_id = ?\n"
    params: list[object] = [group_id]
    if status:
        query += "   AND status = ?\n"
        params.append(status)
    query += f" ORDER BY {sort_column} ASC, id ASC\n LIMIT ? OFFSET ?;"
    params.extend((limit, offset))

    rows = _execute(db, query, tuple(params), "list currencies").fetchall()
    return [Currency(*row) for row in rows]


def list_all_currencies(db: Database) -> list[Currency]:
    """Return every currency row, templates included, ordered by ID."""
    db.sql
    rows = _execute(
        db,
        f"SELECT {_COLUMNS} FROM currencies ORDER BY id ASC;",
        (),
        "list all currencies for export",
    ).fetchall()
    return [Currency(*row) for row in rows]


def count_currencies_by_group_id(db: Database, group_id: int, status: str = "") -> int:
    """Count a group's currencies; an empty status counts all of them."""
    db.sql
    _check_group_id(group_id)
    status = str(status).strip()
    query = "SELECT COUNT(*) FROM currencies WHERE group_id = ?"
    params: list[object] = [group_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    (count,) = _execute(db, query + ";", tuple(params), "count currencies").fetchone()
    return count


def set_currency_status(db: Database, currency_id: int, status: str) -> None:
    """Set the status of the currency with ``currency_id``."""
    db.sql
    if currency_id <= 0:
        raise ValueError("id must be > 0")
    _execute(
        db,
        "UPDATE currencies SET status = ?, updated_at = ? WHERE id = ?;",
        (str(status).strip(), int(time.time()), currency_id),
        "set currency status",
    )


def delete_currency_by_id_and_group_id(db: Database, currency_id: int, group_id: int) -> None:
    """Delete the currency with ``currency_id`` in ``group_id``."""
    db.sql
    if currency_id <= 0:
        raise ValueError("id must be > 0")
    _check_group_id(group_id)
    _execute(
        db,
        "DELETE FROM currencies WHERE id = ? AND group_id = ?;",
        (currency_id, group_id),
        "delete currency",
    )


def copy_default_currencies_to_group(db: Database, group_id: int) -> None:
    """Copy all template currencies (group 0) into ``group_id``."""
    db.sql
    if group_id <= 0:
        raise ValueError("group_id must be > 0")
    now = int(time.time())
    _execute(db, _COPY_TEMPLATES, (group_id, now, now), "copy default currencies to group")