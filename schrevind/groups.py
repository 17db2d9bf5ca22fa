"""Groups, the organisational unit that owns currencies, securities and tax defaults."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass, replace

from schrevind.database import (
    ENTITY_TYPE_GROUP,
    ROLE_GROUP_ADMIN,
    SYSTEM_GROUP_ID,
    Database,
    DatabaseError,
)


@dataclass
class Group:
    """A group of users."""

    id: int = 0
    name: str = ""
    created_at: int = 0
    updated_at: int = 0


_COLUMNS = "id, name, created_at, updated_at"

_INSERT_GROUP = "INSERT INTO groups (name, created_at, updated_at) VALUES (?, ?, ?);"

_COPY_TEMPLATES = """
INSERT INTO currencies (
  group_id, currency, name, decimal_places, status, created_at, updated_at
)
SELECT ?, currency, name, decimal_places, status, ?, ?
  FROM currencies
 WHERE group_id = 0;
"""

_ADD_GROUP_USER = """
INSERT INTO group_users (group_id, user_id)
VALUES (?, ?)
ON CONFLICT(group_id, user_id) DO NOTHING;
"""

_GRANT_MEMBERSHIP = """
INSERT INTO memberships (entity_type, entity_id, user_id, role, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(entity_type, entity_id, user_id) DO UPDATE SET
  role = excluded.role,
  updated_at = excluded.updated_at;
"""


def _normalize(group: Group) -> Group:
    name = group.name.strip()
    if not name:
        raise ValueError("name is required")
    now = int(time.time())
    return replace(group, name=name, created_at=group.created_at or now, updated_at=now)


def _require(group: Group | None) -> None:
    if group is None:
        raise ValueError("group is missing")


def create_group(db: Database, group: Group) -> Group:
    """Insert ``group``; return the stored, normalized record with its ID."""
    connection = db.sql
    _require(group)
    normalized = _normalize(group)
    try:
        cursor = connection.execute(
            _INSERT_GROUP, (normalized.name, normalized.created_at, normalized.updated_at)
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"create group: {exc}") from exc
    return replace(normalized, id=cursor.lastrowid)


def _create_in_transaction(db: Database, group: Group, admin_user_id: int | None, context: str) -> Group:
    normalized = _normalize(group)
    try:
        with db.transaction() as connection:
            cursor = connection.execute(
                _INSERT_GROUP, (normalized.name, normalized.created_at, normalized.updated_at)
            )
            group_id = cursor.lastrowid
            now = int(time.time())
            connection.execute(_COPY_TEMPLATES, (group_id, now, now))
            if admin_user_id is not None:
                connection.execute(_ADD_GROUP_USER, (group_id, admin_user_id))
                connection.execute(
                    _GRANT_MEMBERSHIP,
                    (ENTITY_TYPE_GROUP, group_id, admin_user_id, ROLE_GROUP_ADMIN, now, now),
                )
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return replace(normalized, id=group_id, updated_at=now)


def create_group_with_default_currencies(db: Database, group: Group) -> Group:
    """Create a group and copy the template currencies into it, atomically."""
    db.sql
    _require(group)
    return _create_in_transaction(db, group, None, "create group with default currencies")


def create_group_with_default_currencies_and_admin(db: Database, group: Group, user_id: int) -> Group:
    """Create a group with template currencies and make ``user_id`` its admin member."""
    db.sql
    _require(group)
    if user_id <= 0:
        raise ValueError("user_id must be > 0")
    return _create_in_transaction(
        db, group, user_id, "create group with default currencies and admin"
    )


def get_group_by_id(db: Database, group_id: int) -> Group | None:
    """Return the group with ``group_id``, or None."""
    connection = db.sql
    if group_id <= 0:
        raise ValueError("id must be > 0")
    try:
        row = connection.execute(
            f"SELECT {_COLUMNS} FROM groups WHERE id = ? LIMIT 1;", (group_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        raise DatabaseError(f"get group by id: {exc}") from exc
    return Group(*row) if row is not None else None


def update_group(db: Database, group: Group) -> Group:
    """Rename the group with the record's ID; the system group cannot be changed."""
    connection = db.sql
    _require(group)
    if group.id <= 0:
        raise ValueError("id must be > 0")
    if group.id == SYSTEM_GROUP_ID:
        raise ValueError("system group cannot be modified")
    normalized = _normalize(group)
    try:
        connection.execute(
            "UPDATE groups SET name = ?, updated_at = ? WHERE id = ?;",
            (normalized.name, normalized.updated_at, normalized.id),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"update group: {exc}") from exc
    return normalized


def delete_group(db: Database, group_id: int) -> None:
    """Delete a group and its withholding tax defaults; the system group stays."""
    db.sql
    if group_id <= 0:
        raise ValueError("id must be > 0")
    if group_id == SYSTEM_GROUP_ID:
        raise ValueError("system group cannot be deleted")
    try:
        with db.transaction() as connection:
            connection.execute("DELETE FROM withholding_tax_defaults WHERE group_id = ?;", (group_id,))
            connection.execute("DELETE FROM groups WHERE id = ?;", (group_id,))
    except sqlite3.Error as exc:
        raise DatabaseError(f"delete group: {exc}") from exc


def list_groups(db: Database) -> list[Group]:
    """Return all groups ordered by ID."""
    connection = db.sql
    try:
        rows = connection.execute(f"SELECT {_COLUMNS} FROM groups ORDER BY id ASC;").fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"list groups: {exc}") from exc
    return [Group(*row) for row in rows]