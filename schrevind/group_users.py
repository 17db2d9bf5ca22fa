"""Group membership: who belongs to which group, and who administers it."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass

from schrevind.database import (
    ENTITY_TYPE_GROUP,
    ENTITY_TYPE_SYSTEM,
    ROLE_GROUP_ADMIN,
    SYSTEM_GROUP_ID,
    Database,
    DatabaseError,
    is_valid_group_role,
)
from schrevind.groups import Group


class LastGroupAdminError(DatabaseError):
    """Raised when an operation would leave a group without an admin."""

    def __init__(self, message: str = "last group admin cannot be removed") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class GroupUser:
    """One row of the group/user join table."""

    group_id: int
    user_id: int


@dataclass(frozen=True)
class GroupMember:
    """A user in a group together with their explicit group role, if any."""

    id: int
    first_name: str
    last_name: str
    email: str
    locale: str
    status: str
    role: str
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class GroupWithRole:
    """A group together with one user's role in it; empty when the user has none."""

    id: int
    name: str
    role: str = ""
    created_at: int = 0
    updated_at: int = 0


_INSERT_GROUP_USER = """
INSERT INTO group_users (group_id, user_id)
VALUES (?, ?)
ON CONFLICT(group_id, user_id) DO NOTHING;
"""

_DELETE_GROUP_USER = "DELETE FROM group_users WHERE group_id = ? AND user_id = ?;"

_SELECT_GROUP_ROLE = """
SELECT role
  FROM memberships
 WHERE entity_type = ?
   AND entity_id   = ?
   AND user_id     = ?
 LIMIT 1;
"""

_DELETE_GROUP_ROLE = """
DELETE FROM memberships
 WHERE entity_type = ?
   AND entity_id   = ?
   AND user_id     = ?;
"""

_UPSERT_GROUP_ROLE = """
INSERT INTO memberships (entity_type, entity_id, user_id, role, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(entity_type, entity_id, user_id) DO UPDATE SET
  role       = excluded.role,
  updated_at = excluded.updated_at;
"""

_COUNT_GROUP_ADMINS = """
SELECT COUNT(*)
  FROM memberships
 WHERE entity_type = ?
   AND entity_id   = ?
   AND role        = ?;
"""


def _check_ids(group_id: int, user_id: int) -> None:
    if group_id <= 0:
        raise ValueError("groupID must be > 0")
    if user_id <= 0:
        raise ValueError("userID must be > 0")


def _count_group_admins(connection: sqlite3.Connection, group_id: int) -> int:
    (count,) = connection.execute(
        _COUNT_GROUP_ADMINS, (ENTITY_TYPE_GROUP, group_id, ROLE_GROUP_ADMIN)
    ).fetchone()
    return count


def _current_group_role(connection: sqlite3.Connection, group_id: int, user_id: int) -> str:
    row = connection.execute(_SELECT_GROUP_ROLE, (ENTITY_TYPE_GROUP, group_id, user_id)).fetchone()
    return row[0] if row is not None else ""


def _guard_admin_removal(connection: sqlite3.Connection, group_id: int, user_id: int) -> None:
    if _current_group_role(connection, group_id, user_id) == ROLE_GROUP_ADMIN:
        if _count_group_admins(connection, group_id) <= 1:
            raise LastGroupAdminError()


def add_user_to_group(db: Database, group_id: int, user_id: int) -> bool:
    """Add a user to a group; return False if they already were a member."""
    connection = db.sql
    _check_ids(group_id, user_id)
    try:
        cursor = connection.execute(_INSERT_GROUP_USER, (group_id, user_id))
    except sqlite3.Error as exc:
        raise DatabaseError(f"add user to group: {exc}") from exc
    return cursor.rowcount > 0


def add_group_member(db: Database, group_id: int, user_id: int, role: str = "") -> bool:
    """Add a user to a group and set or clear their group role.

    An empty role means plain membership. Returns whether the user was newly
    added. Raises LastGroupAdminError if the group would be left without an admin.
    """
    db.sql
    _check_ids(group_id, user_id)
    role = role.strip()
    if role and not is_valid_group_role(role):
        raise ValueError(f"invalid group role {role!r}")

    try:
        with db.transaction() as connection:
            cursor = connection.execute(_INSERT_GROUP_USER, (group_id, user_id))
            added = cursor.rowcount > 0
            if role:
                now = int(time.time())
                connection.execute(
                    _UPSERT_GROUP_ROLE, (ENTITY_TYPE_GROUP, group_id, user_id, role, now, now)
                )
            else:
                _guard_admin_removal(connection, group_id, user_id)
                connection.execute(_DELETE_GROUP_ROLE, (ENTITY_TYPE_GROUP, group_id, user_id))
                if _count_group_admins(connection, group_id) <= 0:
                    raise LastGroupAdminError()
    except sqlite3.Error as exc:
        raise DatabaseError(f"add group member: {exc}") from exc
    return added


def remove_user_from_group(db: Database, group_id: int, user_id: int) -> bool:
    """Remove a user from a group; return False if they were not a member."""
    connection = db.sql
    _check_ids(group_id, user_id)
    try:
        cursor = connection.execute(_DELETE_GROUP_USER, (group_id, user_id))
    except sqlite3.Error as exc:
        raise DatabaseError(f"remove user from group: {exc}") from exc
    return cursor.rowcount > 0


def remove_group_member(db: Database, group_id: int, user_id: int) -> bool:
    """Remove a user from a group and clear their group role.

    Returns whether a membership row was removed. Raises LastGroupAdminError
    when the user is the group's only admin.
    """
    db.sql
    _check_ids(group_id, user_id)
    try:
        with db.transaction() as connection:
            _guard_admin_removal(connection, group_id, user_id)
            cursor = connection.execute(_DELETE_GROUP_USER, (group_id, user_id))
            removed = cursor.rowcount > 0
            connection.execute(_DELETE_GROUP_ROLE, (ENTITY_TYPE_GROUP, group_id, user_id))
    except sqlite3.Error as exc:
        raise DatabaseError(f"remove group member: {exc}") from exc
    return removed


def is_user_in_group(db: Database, group_id: int, user_id: int) -> bool:
    """Tell whether the user is a member of the group."""
    connection = db.sql
    _check_ids(group_id, user_id)
    try:
        row = connection.execute(
            "SELECT 1 FROM group_users WHERE group_id = ? AND user_id = ? LIMIT 1;",
            (group_id, user_id),
        ).fetchone()
    except sqlite3.Error as exc:
        raise DatabaseError(f"is user in group: {exc}") from exc
    return row is not None


def list_groups_by_user_id(db: Database, user_id: int) -> list[Group]:
    """Return all groups the user belongs to, ordered by ID."""
    connection = db.sql
    if user_id <= 0:
        raise ValueError("userID must be > 0")
    try:
        rows = connection.execute(
            """
SELECT g.id, g.name, g.created_at, g.updated_at
  FROM groups g
  JOIN group_users gu ON gu.group_id = g.id
 WHERE gu.user_id = ?
 ORDER BY g.id ASC;
""",
            (user_id,),
        ).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"list groups by user: {exc}") from exc
    return [Group(*row) for row in rows]


def list_group_members_by_group_id(db: Database, group_id: int) -> list[GroupMember]:
    """Return the group's users with their explicit group role, ordered by user ID."""
    connection = db.sql
    if group_id <= 0:
        raise ValueError("groupID must be > 0")
    try:
        rows = connection.execute(
            """
SELECT u.id,
       u.firstname,
       u.lastname,
       u.email,
       u.locale,
       u.status,
       COALESCE(m.role, '') AS role,
       u.created_at,
       u.updated_at
  FROM users u
  JOIN group_users gu ON gu.user_id = u.id
  LEFT JOIN memberships m ON m.entity_type = ?
                          AND m.entity_id   = gu.group_id
                          AND m.user_id     = u.id
 WHERE gu.group_id = ?
 ORDER BY u.id ASC;
""",
            (ENTITY_TYPE_GROUP, group_id),
        ).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"list group members by group: {exc}") from exc
    return [GroupMember(*row) for row in rows]


def list_groups_with_role_by_user_id(db: Database, user_id: int) -> list[GroupWithRole]:
    """Return the user's groups, each with the user's role in it.

    A system membership on the system group counts as the role in that group.
    """
    groups = list_groups_by_user_id(db, user_id)
    try:
        memberships = db.sql.execute(
            "SELECT entity_type, entity_id, role FROM memberships WHERE user_id = ? "
            "ORDER BY entity_type ASC, entity_id ASC;",
            (user_id,),
        ).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"list memberships by user: {exc}") from exc

    role_by_group: dict[int, str] = {}
    for entity_type, entity_id, role in memberships:
        if entity_type == ENTITY_TYPE_GROUP:
            role_by_group[entity_id] = role
        elif entity_type == ENTITY_TYPE_SYSTEM and entity_id == SYSTEM_GROUP_ID:
            role_by_group[SYSTEM_GROUP_ID] = role

    return [
        GroupWithRole(
            id=group.id,
            name=group.name,
            role=role_by_group.get(group.id, ""),
            created_at=group.created_at,
            updated_at=group.updated_at,
        )
        for group in groups
    ]


def list_all_group_users(db: Database) -> list[GroupUser]:
    """Return every group/user pair, ordered by group then user."""
    connection = db.sql
    try:
        rows = connection.execute(
            "SELECT group_id, user_id FROM group_users ORDER BY group_id, user_id ASC;"
        ).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"list all group users: {exc}") from exc
    return [GroupUser(*row) for row in rows]