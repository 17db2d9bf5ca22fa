"""SQLite connection handling, schema migration and shared database helpers."""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

log = logging.getLogger(__name__)

SYSTEM_GROUP_ID = 1
"""Reserved ID of the system group; created by the migration."""

ENTITY_TYPE_SYSTEM = "system"
ENTITY_TYPE_GROUP = "group"
ENTITY_TYPE_DEPOT = "depot"

ROLE_GROUP_ADMIN = "admin"
ROLE_DEPOT_VIEWER = "viewer"

GROUP_ROLES = frozenset({ROLE_GROUP_ADMIN})

_CONNECTION_SETTINGS = (
    ("journal_mode", "WAL"),
    ("foreign_keys", "ON"),
    ("busy_timeout", "5000"),
    ("synchronous", "NORMAL"),
)


def _text(name: str, default: str = "") -> str:
    return f"{name} TEXT NOT NULL DEFAULT '{default}'"


def _integer(name: str, default: int = 0) -> str:
    return f"{name} INTEGER NOT NULL DEFAULT {default}"


def _required(name: str, kind: str = "INTEGER") -> str:
    return f"{name} {kind} NOT NULL"


def _primary_key(*columns: str) -> str:
    return f"PRIMARY KEY ({', '.join(columns)})"


def _references(column: str, table: str) -> str:
    return f"FOREIGN KEY({column}) REFERENCES {table}(id)"


_ID = "id INTEGER PRIMARY KEY AUTOINCREMENT"
_TIMESTAMPS = (_integer("created_at"), _integer("updated_at"))


@dataclass(frozen=True)
class _Index:
    columns: tuple[str, ...]
    suffix: str
    unique: bool = False


def _index(*columns: str, suffix: str | None = None, unique: bool = False) -> _Index:
    return _Index(columns, suffix or "_".join(columns), unique)


@dataclass(frozen=True)
class _Table:
    name: str
    columns: tuple[str, ...]
    constraints: tuple[str, ...] = ()
    indexes: tuple[_Index, ...] = ()

    def statements(self) -> Iterator[str]:
        body = ",\n  ".join((*self.columns, *self.constraints))
        yield f"CREATE TABLE IF NOT EXISTS {self.name} (\n  {body}\n)"
        for index in self.indexes:
            kind = "UNIQUE INDEX" if index.unique else "INDEX"
            yield (
                f"CREATE {kind} IF NOT EXISTS idx_{self.name}_{index.suffix} "
                f"ON {self.name}({', '.join(index.columns)})"
            )


_DIVIDEND_TEXT_COLUMNS = (
    "pay_date",
    "ex_date",
    "security_name",
    "security_isin",
    "security_wkn",
    "security_symbol",
    "quantity",
    "dividend_per_unit_amount",
    "dividend_per_unit_currency",
    "fx_rate_label",
    "fx_rate",
    "gross_amount",
    "gross_currency",
    "payout_amount",
    "payout_currency",
    "withholding_tax_country_code",
    "withholding_tax_percent",
    "withholding_tax_amount",
    "withholding_tax_currency",
    "withholding_tax_amount_credit",
    "withholding_tax_amount_credit_currency",
    "withholding_tax_amount_refundable",
    "withholding_tax_amount_refundable_currency",
    "inland_tax_amount",
    "inland_tax_currency",
    "inland_tax_details",
    "foreign_fees_amount",
    "foreign_fees_currency",
    "note",
    "calc_gross_amount_base",
    "calc_after_withholding_amount_base",
)
_TEXT_DEFAULTS = {"fx_rate": "1"}

_TABLES = (
    _Table(
        "users",
        (
            _ID,
            *(_text(c) for c in ("password", "firstname", "lastname", "email")),
            _text("locale", "en-US"),
            _text("status", "active"),
            _text("settings", "{}"),
            *_TIMESTAMPS,
        ),
        indexes=(_index("email", unique=True), _index("status")),
    ),
    _Table("groups", (_ID, _text("name"), *_TIMESTAMPS)),
    _Table(
        "group_users",
        (_required("group_id"), _required("user_id")),
        (
            _primary_key("group_id", "user_id"),
            _references("group_id", "groups"),
            _references("user_id", "users"),
        ),
        (_index("user_id"), _index("group_id")),
    ),
    _Table(
        "memberships",
        (
            _required("entity_type", "TEXT"),
            _required("entity_id"),
            _required("user_id"),
            _text("role"),
            *_TIMESTAMPS,
        ),
        (_primary_key("entity_type", "entity_id", "user_id"), _references("user_id", "users")),
        (_index("user_id"), _index("entity_type", "entity_id", suffix="entity")),
    ),
    _Table(
        "depots",
        (
            _ID,
            *(_text(c) for c in ("name", "broker_name", "account_number")),
            _text("base_currency", "EUR"),
            _text("description"),
            _text("status", "active"),
            *_TIMESTAMPS,
        ),
        indexes=(_index("status"),),
    ),
    _Table(
        "securities",
        (
            _ID,
            _required("group_id"),
            *(_text(c) for c in ("name", "isin", "wkn", "symbol")),
            _text("status", "active"),
            *_TIMESTAMPS,
        ),
        indexes=tuple(
            _index("group_id", column, suffix=f"group_{column}", unique=column == "isin")
            for column in ("isin", "wkn", "symbol", "status")
        ),
    ),
    _Table(
        "withholding_tax_defaults",
        (
            _ID,
            _required("group_id"),
            _integer("depot_id"),
            *(
                _text(c)
                for c in (
                    "country_code",
                    "country_name",
                    "withholding_tax_percent_default",
                    "withholding_tax_percent_credit_default",
                )
            ),
            *_TIMESTAMPS,
        ),
        indexes=(
            _index("group_id", "depot_id", "country_code", suffix="group_depot_country", unique=True),
            _index("group_id"),
            _index("depot_id"),
            _index("group_id", "country_code", suffix="group_country"),
        ),
    ),
    _Table(
        "dividend_entries",
        (
            _ID,
            _required("depot_id"),
            _required("security_id"),
            *(_text(c, _TEXT_DEFAULTS.get(c, "")) for c in _DIVIDEND_TEXT_COLUMNS),
            *_TIMESTAMPS,
        ),
        (_references("depot_id", "depots"), _references("security_id", "securities")),
        (
            _index("depot_id"),
            _index("security_id"),
            _index("pay_date"),
            _index("ex_date"),
            _index("depot_id", "pay_date", suffix="depot_pay_date"),
            _index("security_id", "pay_date", suffix="security_pay_date"),
            _index("security_isin"),
            _index("withholding_tax_country_code", suffix="withholding_country_code"),
        ),
    ),
    _Table(
        "currencies",
        (
            _ID,
            _integer("group_id"),
            _text("currency"),
            _text("name"),
            _integer("decimal_places", 2),
            _text("status", "active"),
            *_TIMESTAMPS,
        ),
        indexes=(
            _index("group_id", "currency", suffix="group_currency", unique=True),
            _index("group_id", "status", suffix="group_status"),
        ),
    ),
    _Table(
        "audit_log",
        (
            _ID,
            _integer("user_id"),
            _text("action"),
            _text("entity_type"),
            _integer("entity_id"),
            _text("detail"),
            _integer("created_at"),
        ),
        indexes=(
            _index("user_id"),
            _index("entity_type", "entity_id", suffix="entity"),
            _index("created_at"),
        ),
    ),
)

_SEED_ROWS: tuple[tuple[str, dict[str, object]], ...] = (
    ("groups", {"id": SYSTEM_GROUP_ID, "name": "System", "created_at": 0, "updated_at": 0}),
    *(
        (
            "currencies",
            {
                "group_id": 0,
                "currency": code,
                "name": name,
                "decimal_places": 2,
                "created_at": 0,
                "updated_at": 0,
            },
        )
        for code, name in (("EUR", "Euro"), ("USD", "US Dollar"))
    ),
)


class DatabaseError(Exception):
    """Raised when the database is unavailable or a statement fails."""


def sql_placeholders(count: int) -> str:
    """Return ``count`` comma-separated ``?`` placeholders."""
    return ", ".join("?" * max(count, 0))


def is_valid_group_role(role: str) -> bool:
    """Tell whether ``role`` is a role that may be granted on a group."""
    return role in GROUP_ROLES


def _schema_statements() -> Iterator[tuple[str, tuple[object, ...]]]:
    for table in _TABLES:
        for statement in table.statements():
            yield statement, ()
    for table_name, row in _SEED_ROWS:
        columns = ", ".join(row)
        yield (
            f"INSERT OR IGNORE INTO {table_name} ({columns}) VALUES ({sql_placeholders(len(row))})",
            tuple(row.values()),
        )


class Database:
    """An open SQLite database in autocommit mode."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection: sqlite3.Connection | None = connection

    @property
    def sql(self) -> sqlite3.Connection:
        """The underlying connection; raises if the database is closed."""
        if self._connection is None:
            raise DatabaseError("db not initialized")
        return self._connection

    @property
    def closed(self) -> bool:
        return self._connection is None

    def close(self) -> None:
        """Close the connection; closing twice is harmless."""
        if self._connection is None:
            return
        self._connection.close()
        self._connection = None

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction, rolled back if it raises."""
        connection = self.sql
        connection.execute("BEGIN")
        try:
            yield connection
        except BaseException:
            connection.rollback()
            raise
        connection.commit()

    def migrate(self) -> None:
        """Create all tables, indexes and seed rows that do not exist yet."""
        connection = self.sql
        for statement, params in _schema_statements():
            try:
                connection.execute(statement, params)
            except sqlite3.Error as exc:
                raise DatabaseError(f"migrate: {exc}") from exc
        log.info("sqlite migration done")


def open_database(path: str | os.PathLike[str]) -> Database:
    """Open the SQLite file at ``path`` and apply the connection settings."""
    try:
        connection = sqlite3.connect(os.fspath(path), isolation_level=None, check_same_thread=False)
    except sqlite3.Error as exc:
        raise DatabaseError(f"open sqlite: {exc}") from exc

    try:
        connection.execute("SELECT 1").fetchone()
    except sqlite3.Error as exc:
        connection.close()
        raise DatabaseError(f"ping sqlite: {exc}") from exc

    for setting, value in _CONNECTION_SETTINGS:
        pragma = f"PRAGMA {setting} = {value};"
        try:
            connection.execute(pragma).fetchall()
        except sqlite3.Error as exc:
            connection.close()
            raise DatabaseError(f"apply pragma ({pragma}): {exc}") from exc

    return Database(connection)