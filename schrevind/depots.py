"""Depots (brokerage accounts) and the queries that scope them by membership."""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterable
from dataclasses import dataclass, replace

from schrevind.database import ENTITY_TYPE_DEPOT, Database, DatabaseError, sql_placeholders


@dataclass
class Depot:
    """A securities depot held at a broker."""

    id: int = 0
    name: str = ""
    broker_name: str = ""
    account_number: str = ""
    base_currency: str = ""
    description: str = ""
    status: str = ""
    created_at: int = 0
    updated_at: int = 0


_COLUMNS = (
    "id, name, broker_name, account_number, base_currency, description, status, created_at, updated_at"
)
_D_COLUMNS = ", ".join(f"d.{column.strip()}" for column in _COLUMNS.split(","))


def _normalize(depot: Depot) -> Depot:
    now = int(time.time())
    return replace(
        depot,
        name=depot.name.strip(),
        broker_name=depot.broker_name.strip(),
        account_number=depot.account_number.strip(),
        base_currency=depot.base_currency.strip(),
        description=depot.description.strip(),
        status=str(depot.status).strip(),
        created_at=depot.created_at or now,
        updated_at=now,
    )


def _query(db: Database, query: str, params: Iterable[object], context: str) -> list[Depot]:
    try:
        rows = db.sql.execute(query, tuple(params)).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return [Depot(*row) for row in rows]


def _check_user_id(user_id: int) -> None:
    if user_id <= 0:
        raise ValueError("userID must be > 0")


def create_depot(db: Database, depot: Depot) -> Depot:
    """Insert ``depot``; return the stored, normalized record with its ID."""
    connection = db.sql
    if depot is None:
        raise ValueError("depot is missing")
    n = _normalize(depot)
    try:
        cursor = connection.execute(
            "INSERT INTO depots (name, broker_name, account_number, base_currency, description, "
            "status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                n.name,
                n.broker_name,
                n.account_number,
                n.base_currency,
                n.description,
                n.status,
                n.created_at,
                n.updated_at,
            ),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"create depot: {exc}") from exc
    return replace(n, id=cursor.lastrowid)


def update_depot(db: Database, depot: Depot) -> Depot:
    """Update the depot with the record's ID; return the normalized record."""
    connection = db.sql
    if depot is None:
        raise ValueError("depot is missing")
    if depot.id <= 0:
        raise ValueError("id must be > 0")
    n = _normalize(depot)
    try:
        connection.execute(
            """
UPDATE depots
   SET name = ?,
       broker_name = ?,
       account_number = ?,
       base_currency = ?,
       description = ?,
       status = ?,
       updated_at = ?
 WHERE id = ?;
""",
            (
                n.name,
                n.broker_name,
                n.account_number,
                n.base_currency,
                n.description,
                n.status,
                n.updated_at,
                n.id,
            ),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"update depot: {exc}") from exc
    return n


def get_depot_by_id(db: Database, depot_id: int) -> Depot | None:
    """Return the depot with ``depot_id``, or None."""
    db.sql
    if depot_id <= 0:
        raise ValueError("id must be > 0")
    rows = _query(
        db,
        f"SELECT {_COLUMNS} FROM depots WHERE id = ? LIMIT 1;",
        (depot_id,),
        "get depot by id",
    )
    return rows[0] if rows else None


def list_depots_by_user_membership(db: Database, user_id: int) -> list[Depot]:
    """Return every depot the user is a direct member of, whatever its status."""
    db.sql
    _check_user_id(user_id)
    return _query(
        db,
        f"""
SELECT {_D_COLUMNS}
  FROM depots d
  JOIN memberships m ON m.entity_type = ? AND m.entity_id = d.id
 WHERE m.user_id = ?
 ORDER BY d.id ASC;
""",
        (ENTITY_TYPE_DEPOT, user_id),
        "list depots by user membership",
    )


def list_depots_for_action_scope(
    db: Database, user_id: int, all_depots: bool, roles: Iterable[str] = ()
) -> list[Depot]:
    """Return the depots a permission scope covers: all of them, or the user's by role."""
    db.sql
    _check_user_id(user_id)
    if all_depots:
        return _query(
            db,
            f"SELECT {_COLUMNS} FROM depots ORDER BY id ASC;",
            (),
            "list depots for action scope",
        )

    role_list = list(roles or ())
    query = f"""
SELECT DISTINCT {_D_COLUMNS}
  FROM depots d
  JOIN memberships m ON m.entity_type = ? AND m.entity_id = d.id
 WHERE m.user_id = ?
"""
    params: list[object] = [ENTITY_TYPE_DEPOT, user_id]
    if role_list:
        query += f"   AND m.role IN ({sql_placeholders(len(role_list))})\n"
        params.extend(role_list)
    query += " ORDER BY d.id ASC;"
    return _query(db, query, params, "list depots for action scope")


def list_depots_by_group_id(db: Database, group_id: int) -> list[Depot]:
    """Return every depot that some member of the group has a membership on."""
    db.sql
    if group_id <= 0:
        raise ValueError("groupID must be > 0")
    return _query(
        db,
        f"""
SELECT DISTINCT {_D_COLUMNS}
  FROM depots d
  JOIN memberships m ON m.entity_type = ? AND m.entity_id = d.id
  JOIN group_users gu ON gu.user_id = m.user_id
 WHERE gu.group_id = ?
 ORDER BY d.id ASC;
""",
        (ENTITY_TYPE_DEPOT, group_id),
        "list depots by group",
    )


def list_all_depots(db: Database) -> list[Depot]:
    """Return every depot ordered by ID."""
    db.sql
    return _query(
        db, f"SELECT {_COLUMNS} FROM depots ORDER BY id ASC;", (), "list all depots for export"
    )


def set_depot_status(db: Database, depot_id: int, status: str) -> None:
    """Set the status of the depot with ``depot_id``."""
    connection = db.sql
    if depot_id <= 0:
        raise ValueError("id must be > 0")
    try:
        connection.execute(
            "UPDATE depots SET status = ?, updated_at = ? WHERE id = ?;",
            (str(status).strip(), int(time.time()), depot_id),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"set depot status: {exc}") from exc


def delete_depot(db: Database, depot_id: int) -> None:
    """Delete a depot together with its withholding tax defaults."""
    db.sql
    if depot_id <= 0:
        raise ValueError("id must be > 0")
    try:
        with db.transaction() as connection:
            connection.execute("DELETE FROM withholding_tax_defaults WHERE depot_id = ?;", (depot_id,))
            connection.execute("DELETE FROM depots WHERE id = ?;", (depot_id,))
    except sqlite3.Error as exc:
        raise DatabaseError(f"delete depot: {exc}") from exc