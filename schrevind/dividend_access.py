"""Dividend entry queries scoped by what a user may see through depot memberships."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence

from schrevind.database import ENTITY_TYPE_DEPOT, Database, DatabaseError, sql_placeholders
from schrevind.dividend_entries import (
    DividendEntry,
    DividendEntryListFilters,
    _SELECT_COLUMNS,
    _append_filters,
    _count,
    _fetch_entries,
    _sort_column,
    _sort_direction,
)


def _year_from_pay_date(pay_date: str) -> int:
    pay_date = (pay_date or "").strip()
    if len(pay_date) < 4:
        raise ValueError("invalid pay_date")
    try:
        year = int(pay_date[:4])
    except ValueError as exc:
        raise ValueError("invalid pay_date") from exc
    if year <= 0:
        raise ValueError("invalid pay_date")
    return year


def _check_user_id(user_id: int) -> None:
    if user_id <= 0:
        raise ValueError("userID must be > 0")


def _check_page(limit: int, offset: int) -> None:
    if limit < 0:
        raise ValueError("limit must be >= 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")


def _scoped_query(
    select: str,
    user_id: int,
    all_depots: bool,
    roles: Iterable[str] | None,
    conditions: Sequence[str] = (),
    condition_params: Sequence[object] = (),
) -> tuple[str, list[object]]:
    """Build the FROM/WHERE part covering every entry, or the user's depots by role."""
    if all_depots:
        where = "\n   AND ".join(conditions) if conditions else "1 = 1"
        query = f"SELECT {select}\n  FROM dividend_entries de\n WHERE {where}\n"
        return query, list(condition_params)

    query = (
        f"SELECT {select}\n"
        "  FROM dividend_entries de\n"
        "  JOIN memberships m ON m.entity_type = ? AND m.entity_id = de.depot_id\n"
        " WHERE m.user_id = ?\n"
    )
    for condition in conditions:
        query += f"   AND {condition}\n"
    params: list[object] = [ENTITY_TYPE_DEPOT, user_id, *condition_params]
    role_list = list(roles or ())
    if role_list:
        query += f"   AND m.role IN ({sql_placeholders(len(role_list))})\n"
        params.extend(role_list)
    return query, params


def _first_year(db: Database, query: str, params: Sequence[object], context: str) -> int | None:
    try:
        row = db.sql.execute(query, tuple(params)).fetchone()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    if row is None:
        return None
    try:
        return _year_from_pay_date(row[0])
    except ValueError as exc:
        raise ValueError(f"{context}: {exc}") from exc


def get_first_dividend_entry_year_by_depot_id(db: Database, depot_id: int) -> int | None:
    """Return the year of the depot's earliest dated entry, or None if it has none."""
    db.sql
    if depot_id <= 0:
        raise ValueError("depotID must be > 0")
    return _first_year(
        db,
        """
SELECT de.pay_date
  FROM dividend_entries de
 WHERE de.depot_id = ?
   AND TRIM(de.pay_date) <> ''
 ORDER BY de.pay_date ASC, de.id ASC
 LIMIT 1;
""",
        (depot_id,),
        "get first dividend entry year by depot",
    )


def get_first_accessible_dividend_entry_year_by_user(
    db: Database, user_id: int, all_depots: bool, roles: Iterable[str] | None = ()
) -> int | None:
    """Return the earliest pay-date year among entries the user may access, or None."""
    db.sql
    _check_user_id(user_id)
    query, params = _scoped_query(
        "de.pay_date", user_id, all_depots, roles, ("TRIM(de.pay_date) <> ''",)
    )
    query += " ORDER BY de.pay_date ASC, de.id ASC\n LIMIT 1;"
    return _first_year(db, query, params, "get first accessible dividend entry year by user")


def _list_page(
    db: Database,
    query: str,
    params: list[object],
    limit: int,
    offset: int,
    sort_by: str,
    direction: str,
    filters: DividendEntryListFilters | None,
    context: str,
) -> list[DividendEntry]:
    try:
        sort_column = _sort_column(sort_by)
        sort_direction = _sort_direction(direction)
    except ValueError as exc:
        raise ValueError(f"{context}: {exc}") from exc
    query = _append_filters(query, params, filters)
    query += f" ORDER BY {sort_column} {sort_direction}, de.id {sort_direction}\n LIMIT ? OFFSET ?;"
    params.extend((limit, offset))
    return _fetch_entries(db, query, params, context)


def list_accessible_dividend_entries_by_user(
    db: Database,
    user_id: int,
    all_depots: bool,
    roles: Iterable[str] | None,
    limit: int,
    offset: int,
    sort_by: str = "",
    direction: str = "",
    filters: DividendEntryListFilters | None = None,
) -> list[DividendEntry]:
    """Return one filtered, sorted page of the entries the user may access."""
    db.sql
    _check_user_id(user_id)
    _check_page(limit, offset)
    query, params = _scoped_query(_SELECT_COLUMNS, user_id, all_depots, roles)
    return _list_page(
        db, query, params, limit, offset, sort_by, direction, filters,
        "list accessible dividend entries by user",
    )


def count_accessible_dividend_entries_by_user(
    db: Database,
    user_id: int,
    all_depots: bool,
    roles: Iterable[str] | None,
    filters: DividendEntryListFilters | None = None,
) -> int:
    """Count the entries the user may access that match ``filters``."""
    db.sql
    _check_user_id(user_id)
    query, params = _scoped_query("COUNT(*)", user_id, all_depots, roles)
    query = _append_filters(query, params, filters) + ";"
    return _count(db, query, params, "count accessible dividend entries by user")


def list_accessible_dividend_entries_by_security_id(
    db: Database,
    user_id: int,
    all_depots: bool,
    roles: Iterable[str] | None,
    security_id: int,
    limit: int,
    offset: int,
    sort_by: str = "",
    direction: str = "",
    filters: DividendEntryListFilters | None = None,
) -> list[DividendEntry]:
    """Return one filtered, sorted page of a security's entries the user may access."""
    db.sql
    _check_user_id(user_id)
    if security_id <= 0:
        raise ValueError("securityID must be > 0")
    _check_page(limit, offset)
    query, params = _scoped_query(
        _SELECT_COLUMNS, user_id, all_depots, roles, ("de.security_id = ?",), (security_id,)
    )
    return _list_page(
        db, query, params, limit, offset, sort_by, direction, filters,
        "list accessible dividend entries by security",
    )


def count_accessible_dividend_entries_by_security_id(
    db: Database,
    user_id: int,
    all_depots: bool,
    roles: Iterable[str] | None,
    security_id: int,
    filters: DividendEntryListFilters | None = None,
) -> int:
    """Count a security's entries the user may access that match ``filters``."""
    db.sql
    _check_user_id(user_id)
    if security_id <= 0:
        raise ValueError("securityID must be > 0")
    query, params = _scoped_query(
        "COUNT(*)", user_id, all_depots, roles, ("de.security_id = ?",), (security_id,)
    )
    query = _append_filters(query, params, filters) + ";"
    return _count(db, query, params, "count accessible dividend entries by security")