"""Append-only audit log of user actions on entities."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass, replace
from enum import StrEnum

from schrevind.database import Database, DatabaseError


class AuditAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DEACTIVATE = "deactivate"
    GRANT = "grant"
    REVOKE = "revoke"
    TRANSFER = "transfer"


@dataclass
class AuditLog:
    """One audit log entry."""

    id: int = 0
    user_id: int = 0
    action: str = ""
    entity_type: str = ""
    entity_id: int = 0
    detail: str = ""
    created_at: int = 0


_SELECT = "SELECT id, user_id, action, entity_type, entity_id, detail, created_at FROM audit_log"


def write_audit_log(db: Database, entry: AuditLog) -> AuditLog:
    """Append ``entry``; return it with its ID and, if unset, the current time."""
    connection = db.sql
    if entry is None:
        raise ValueError("audit log entry is missing")

    created_at = entry.created_at or int(time.time())
    try:
        cursor = connection.execute(
            "INSERT INTO audit_log (user_id, action, entity_type, entity_id, detail, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (
                entry.user_id,
                str(entry.action),
                entry.entity_type,
                entry.entity_id,
                entry.detail,
                created_at,
            ),
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"write audit log: {exc}") from exc

    return replace(entry, id=cursor.lastrowid, created_at=created_at)


def _list(db: Database, where: str, params: tuple, context: str) -> list[AuditLog]:
    try:
        rows = db.sql.execute(f"{_SELECT} WHERE {where} ORDER BY id ASC;", params).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc
    return [AuditLog(*row) for row in rows]


def list_audit_log_by_entity(db: Database, entity_type: str, entity_id: int) -> list[AuditLog]:
    """Return all entries for one entity, oldest first."""
    db.sql
    if entity_id <= 0:
        raise ValueError("entity_id must be > 0")
    return _list(
        db,
        "entity_type = ? AND entity_id = ?",
        (entity_type, entity_id),
        "list audit log by entity",
    )


def list_audit_log_by_user(db: Database, user_id: int) -> list[AuditLog]:
    """Return all entries written for one user, oldest first."""
    db.sql
    if user_id <= 0:
        raise ValueError("user_id must be > 0")
    return _list(db, "user_id = ?", (user_id,), "list audit log by user")