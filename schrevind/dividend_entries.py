"""Dividend entries: one booked dividend payment per depot and security."""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Iterable
from dataclasses import dataclass, field, fields, replace

from schrevind.database import Database, DatabaseError
from schrevind.inland_tax_templates import InlandTaxDetail


@dataclass
class DividendEntry:
    """A dividend payment with its amounts, currencies and taxes.

    Amounts are kept as decimal strings exactly as they were entered.
    """

    id: int = 0
    depot_id: int = 0
    security_id: int = 0
    pay_date: str = ""
    ex_date: str = ""
    security_name: str = ""
    security_isin: str = ""
    security_wkn: str = ""
    security_symbol: str = ""
    quantity: str = ""
    dividend_per_unit_amount: str = ""
    dividend_per_unit_currency: str = ""
    fx_rate_label: str = ""
    fx_rate: str = ""
    gross_amount: str = ""
    gross_currency: str = ""
    payout_amount: str = ""
    payout_currency: str = ""
    withholding_tax_country_code: str = ""
    withholding_tax_percent: str = ""
    withholding_tax_amount: str = ""
    withholding_tax_currency: str = ""
    withholding_tax_amount_credit: str = ""
    withholding_tax_amount_credit_currency: str = ""
    withholding_tax_amount_refundable: str = ""
    withholding_tax_amount_refundable_currency: str = ""
    inland_tax_amount: str = ""
    inland_tax_currency: str = ""
    inland_tax_details: list[InlandTaxDetail] = field(default_factory=list)
    foreign_fees_amount: str = ""
    foreign_fees_currency: str = ""
    note: str = ""
    calc_gross_amount_base: str = ""
    calc_after_withholding_amount_base: str = ""
    created_at: int = 0
    updated_at: int = 0


@dataclass(frozen=True)
class DividendEntryListFilters:
    """Optional filters for listing dividend entries; empty or zero values are ignored."""

    from_date: str = ""
    to_date: str = ""
    search: str = ""
    year: int = 0
    depot_id: int = 0


# Attribute names equal the column names, in table order.
_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(DividendEntry))
_NON_TEXT = frozenset(
    {"id", "depot_id", "security_id", "inland_tax_details", "created_at", "updated_at"}
)
_TEXT_FIELDS: tuple[str, ...] = tuple(name for name in _COLUMNS if name not in _NON_TEXT)
_DETAILS_INDEX = _COLUMNS.index("inland_tax_details")

_SELECT_COLUMNS = ", ".join(f"de.{name}" for name in _COLUMNS)
_INSERT_COLUMNS = tuple(name for name in _COLUMNS if name != "id")
_UPDATE_COLUMNS = tuple(name for name in _COLUMNS if name not in {"id", "created_at"})

_SORT_COLUMNS = {
    "": "de.pay_date",
    "PayDate": "de.pay_date",
    "ExDate": "de.ex_date",
    "SecurityName": "de.security_name COLLATE NOCASE",
}

_INVALID_DETAILS = "decode inland tax details: invalid JSON array"


def encode_inland_tax_details(details: Iterable[InlandTaxDetail] | None) -> str:
    """Encode detail lines as a JSON array; no details give ``[]``."""
    items = list(details or ())
    if not items:
        return "[]"
    return json.dumps([detail.to_dict() for detail in items], ensure_ascii=False, separators=(",", ":"))


def decode_inland_tax_details(raw: str | None) -> list[InlandTaxDetail]:
    """Decode a stored JSON array of detail lines.

    Empty text, ``null`` and an empty JSON object all mean no details.
    Anything else that is not an array of objects raises ValueError.
    """
    raw = (raw or "").strip()
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(_INVALID_DETAILS) from exc

    if value is None:
        return []
    if isinstance(value, list):
        try:
            return [InlandTaxDetail.from_dict(item) for item in value]
        except (TypeError, ValueError) as exc:
            raise ValueError(_INVALID_DETAILS) from exc
    if isinstance(value, dict) and not value:
        return []
    raise ValueError(_INVALID_DETAILS)


def _normalize(entry: DividendEntry) -> DividendEntry:
    stripped = {name: str(getattr(entry, name)).strip() for name in _TEXT_FIELDS}
    details = [
        InlandTaxDetail(
            code=detail.code.strip(),
            label=detail.label.strip(),
            amount=detail.amount.strip(),
            currency=detail.currency.strip(),
        )
        for detail in entry.inland_tax_details or ()
    ]

    if entry.depot_id <= 0:
        raise ValueError("depotID must be > 0")
    if entry.security_id <= 0:
        raise ValueError("securityID must be > 0")

    now = int(time.time())
    return replace(
        entry,
        **stripped,
        inland_tax_details=details,
        created_at=entry.created_at or now,
        updated_at=now,
    )


def _row_to_entry(row: tuple) -> DividendEntry:
    values = list(row)
    values[_DETAILS_INDEX] = decode_inland_tax_details(values[_DETAILS_INDEX])
    return DividendEntry(*values)


def _column_values(entry: DividendEntry, names: Iterable[str]) -> list[object]:
    encoded = encode_inland_tax_details(entry.inland_tax_details)
    return [encoded if name == "inland_tax_details" else getattr(entry, name) for name in names]


def _sort_column(sort_by: str) -> str:
    column = _SORT_COLUMNS.get((sort_by or "").strip())
    if column is None:
        raise ValueError("invalid sort")
    return column


def _sort_direction(direction: str) -> str:
    value = (direction or "").strip().upper()
    if value in ("", "ASC"):
        return "ASC"
    if value == "DESC":
        return "DESC"
    raise ValueError("invalid direction")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _append_filters(
    query: str, params: list[object], filters: DividendEntryListFilters | None
) -> str:
    filters = filters or DividendEntryListFilters()
    from_date = filters.from_date.strip()
    to_date = filters.to_date.strip()
    search = filters.search.strip()

    if from_date:
        query += "   AND de.pay_date >= ?\n"
        params.append(from_date)
    if to_date:
        query += "   AND de.pay_date <= ?\n"
        params.append(to_date)
    if filters.year > 0:
        query += "   AND de.pay_date >= ?\n   AND de.pay_date <= ?\n"
        params.extend((f"{filters.year:04d}-01-01", f"{filters.year:04d}-12-31"))
    if filters.depot_id > 0:
        query += "   AND de.depot_id = ?\n"
        params.append(filters.depot_id)
    if search:
        pattern = "%" + _escape_like(search.lower()) + "%"
        query += (
            "   AND (\n"
            "       LOWER(de.security_name) LIKE ? ESCAPE '\\'\n"
            "       OR LOWER(de.security_isin) LIKE ? ESCAPE '\\'\n"
            "       OR LOWER(de.security_wkn) LIKE ? ESCAPE '\\'\n"
            "       OR LOWER(de.security_symbol) LIKE ? ESCAPE '\\'\n"
            "   )\n"
        )
        params.extend((pattern,) * 4)
    return query


def _fetch_entries(db: Database, query: str, params: Iterable[object], context: str) -> list[DividendEntry]:
    try:
        rows = db.sql.execute(query, tuple(params)).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return [_row_to_entry(row) for row in rows]


def _count(db: Database, query: str, params: Iterable[object], context: str) -> int:
    try:
        (count,) = db.sql.execute(query, tuple(params)).fetchone()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return count


def create_dividend_entry(db: Database, entry: DividendEntry) -> DividendEntry:
    """Insert ``entry``; return the stored, normalized record with its ID."""
    connection = db.sql
    if entry is None:
        raise ValueError("entry is missing")
    normalized = _normalize(entry)
    marks = ", ".join("?" * len(_INSERT_COLUMNS))
    try:
        cursor = connection.execute(
            f"INSERT INTO dividend_entries ({', '.join(_INSERT_COLUMNS)}) VALUES ({marks});",
            _column_values(normalized, _INSERT_COLUMNS),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"create dividend entry: {exc}") from exc
    return replace(normalized, id=cursor.lastrowid)


def update_dividend_entry(db: Database, entry: DividendEntry) -> DividendEntry:
    """Update the entry with the record's ID; return the normalized record."""
    connection = db.sql
    if entry is None:
        raise ValueError("entry is missing")
    if entry.id <= 0:
        raise ValueError("id must be > 0")
    normalized = _normalize(entry)
    assignments = ",\n       ".join(f"{name} = ?" for name in _UPDATE_COLUMNS)
    try:
        connection.execute(
            f"UPDATE dividend_entries\n   SET {assignments}\n WHERE id = ?;",
            [*_column_values(normalized, _UPDATE_COLUMNS), normalized.id],
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"update dividend entry: {exc}") from exc
    return normalized


def get_dividend_entry_by_id(db: Database, entry_id: int) -> DividendEntry | None:
    """Return the entry with ``entry_id``, or None."""
    db.sql
    if entry_id <= 0:
        raise ValueError("id must be > 0")
    entries = _fetch_entries(
        db,
        f"SELECT {_SELECT_COLUMNS} FROM dividend_entries de WHERE de.id = ? LIMIT 1;",
        (entry_id,),
        "get dividend entry by id",
    )
    return entries[0] if entries else None


def delete_dividend_entry(db: Database, entry_id: int) -> None:
    """Delete the entry with ``entry_id``."""
    connection = db.sql
    if entry_id <= 0:
        raise ValueError("id must be > 0")
    try:
        connection.execute("DELETE FROM dividend_entries WHERE id = ?;", (entry_id,))
    except sqlite3.Error as exc:
        raise DatabaseError(f"delete dividend entry: {exc}") from exc


def list_all_dividend_entries(db: Database) -> list[DividendEntry]:
    """Return every entry, ordered by pay date then ID."""
    db.sql
    return _fetch_entries(
        db,
        f"SELECT {_SELECT_COLUMNS} FROM dividend_entries de ORDER BY de.pay_date ASC, de.id ASC;",
        (),
        "list all dividend entries for export",
    )


def _list_by_column(
    db: Database,
    column: str,
    value: int,
    limit: int,
    offset: int,
    sort_by: str,
    direction: str,
    filters: DividendEntryListFilters | None,
) -> list[DividendEntry]:
    db.sql
    if value <= 0:
        raise ValueError(f"{column} must be > 0")
    if limit < 0:
        raise ValueError("limit must be >= 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")
    context = f"list dividend entries page by {column}"
    try:
        sort_column = _sort_column(sort_by)
        sort_direction = _sort_direction(direction)
    except ValueError as exc:
        raise ValueError(f"{context}: {exc}") from exc

    params: list[object] = [value]
    query = f"SELECT {_SELECT_COLUMNS}\n  FROM dividend_entries de\n WHERE de.{column} = ?\n"
    query = _append_filters(query, params, filters)
    query += f" ORDER BY {sort_column} {sort_direction}, de.id {sort_direction}\n LIMIT ? OFFSET ?;"
    params.extend((limit, offset))
    return _fetch_entries(db, query, params, context)


def _count_by_column(
    db: Database, column: str, value: int, filters: DividendEntryListFilters | None
) -> int:
    db.sql
    if value <= 0:
        raise ValueError(f"{column} must be > 0")
    params: list[object] = [value]
    query = f"SELECT COUNT(*)\n  FROM dividend_entries de\n WHERE de.{column} = ?\n"
    query = _append_filters(query, params, filters) + ";"
    return _count(db, query, params, f"count dividend entries by {column}")


def list_dividend_entries_by_depot_id(
    db: Database,
    depot_id: int,
    limit: int,
    offset: int,
    sort_by: str = "",
    direction: str = "",
    filters: DividendEntryListFilters | None = None,
) -> list[DividendEntry]:
    """Return one filtered, sorted page of a depot's entries."""
    return _list_by_column(db, "depot_id", depot_id, limit, offset, sort_by, direction, filters)


def count_dividend_entries_by_depot_id(
    db: Database, depot_id: int, filters: DividendEntryListFilters | None = None
) -> int:
    """Count a depot's entries that match ``filters``."""
    return _count_by_column(db, "depot_id", depot_id, filters)


def list_dividend_entries_by_security_id(
    db: Database,
    security_id: int,
    limit: int,
    offset: int,
    sort_by: str = "",
    direction: str = "",
    filters: DividendEntryListFilters | None = None,
) -> list[DividendEntry]:
    """Return one filtered, sorted page of a security's entries."""
    return _list_by_column(db, "security_id", security_id, limit, offset, sort_by, direction, filters)


def count_dividend_entries_by_security_id(
    db: Database, security_id: int, filters: DividendEntryListFilters | None = None
) -> int:
    """Count a security's entries that match ``filters``."""
    return _count_by_column(db, "security_id", security_id, filters)