"""Raw dividend rows that the dividend analyses aggregate."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from schrevind.database import Database, DatabaseError, sql_placeholders


@dataclass(frozen=True)
class DividendsByYearSourceRow:
    year: str
    gross: str
    after_withholding: str
    net: str


@dataclass(frozen=True)
class DividendsByYearMonthSourceRow:
    year: str
    month: str
    gross: str
    after_withholding: str
    net: str


@dataclass(frozen=True)
class DividendsBySecurityYearSourceRow:
    security_id: int
    security_name: str
    security_isin: str
    year: str
    pay_date: str
    quantity: str
    gross: str
    after_withholding: str
    net: str


@dataclass(frozen=True)
class DividendsByYearMonthSecuritySourceRow:
    year: str
    month: str
    security_id: int
    security_name: str
    security_isin: str
    gross: str
    after_withholding: str
    net: str


_Row = TypeVar("_Row")

_YEAR = "strftime('%Y', pay_date)"
_MONTH = "strftime('%m', pay_date)"
_AMOUNTS = ("calc_gross_amount_base", "calc_after_withholding_amount_base", "payout_amount")
_SECURITY = ("security_id", "security_name", "security_isin")
_BY_NAME = "security_name COLLATE NOCASE ASC"


@dataclass(frozen=True)
class _RowQuery(Generic[_Row]):
    columns: tuple[str, ...]
    order_by: tuple[str, ...]
    needs_month: bool
    factory: Callable[..., _Row]
    context: str

    def render(self, depot_count: int) -> str:
        conditions = [
            f"depot_id IN ({sql_placeholders(depot_count)})",
            "pay_date != ''",
            f"{_YEAR} IS NOT NULL",
        ]
        if self.needs_month:
            conditions.append(f"{_MONTH} IS NOT NULL")
        return (
            f"SELECT {', '.join(self.columns)} FROM dividend_entries "
            f"WHERE {' AND '.join(conditions)} ORDER BY {', '.join(self.order_by)}"
        )

    def run(self, db: Database, depot_ids: Iterable[int]) -> list[_Row]:
        connection = db.sql
        ids = list(depot_ids)
        if not ids:
            return []
        try:
            rows = connection.execute(self.render(len(ids)), ids).fetchall()
        except sqlite3.Error as exc:
            raise DatabaseError(f"{self.context}: {exc}") from exc
        return [self.factory(*row) for row in rows]


_BY_YEAR = _RowQuery(
    columns=(f"{_YEAR} AS year", *_AMOUNTS),
    order_by=("year ASC",),
    needs_month=False,
    factory=DividendsByYearSourceRow,
    context="list dividend analysis rows by depot ids",
)

_BY_YEAR_MONTH = _RowQuery(
    columns=(f"{_YEAR} AS year", f"{_MONTH} AS month", *_AMOUNTS),
    order_by=("year ASC", "month ASC"),
    needs_month=True,
    factory=DividendsByYearMonthSourceRow,
    context="list dividend analysis month rows by depot ids",
)

_BY_SECURITY_YEAR = _RowQuery(
    columns=(*_SECURITY, f"{_YEAR} AS year", "pay_date", "quantity", *_AMOUNTS),
    order_by=(_BY_NAME, "year ASC", "pay_date ASC", "id ASC"),
    needs_month=False,
    factory=DividendsBySecurityYearSourceRow,
    context="list dividend analysis security year rows by depot ids",
)

_BY_YEAR_MONTH_SECURITY = _RowQuery(
    columns=(f"{_YEAR} AS year", f"{_MONTH} AS month", *_SECURITY, *_AMOUNTS),
    order_by=("year ASC", "month ASC", _BY_NAME, "id ASC"),
    needs_month=True,
    factory=DividendsByYearMonthSecuritySourceRow,
    context="list dividend analysis year month security rows by depot ids",
)


def list_dividend_analysis_rows_by_depot_ids(
    db: Database, depot_ids: Iterable[int]
) -> list[DividendsByYearSourceRow]:
    """Return year and amounts of every dated entry in the depots, by year."""
    return _BY_YEAR.run(db, depot_ids)


def list_dividend_analysis_month_rows_by_depot_ids(
    db: Database, depot_ids: Iterable[int]
) -> list[DividendsByYearMonthSourceRow]:
    """Return year, month and amounts of every dated entry, by year and month."""
    return _BY_YEAR_MONTH.run(db, depot_ids)


def list_dividend_analysis_security_year_rows_by_depot_ids(
    db: Database, depot_ids: Iterable[int]
) -> list[DividendsBySecurityYearSourceRow]:
    """Return security, year, quantity and amounts, by security name then date."""
    return _BY_SECURITY_YEAR.run(db, depot_ids)


def list_dividend_analysis_year_month_security_rows_by_depot_ids(
    db: Database, depot_ids: Iterable[int]
) -> list[DividendsByYearMonthSecuritySourceRow]:
    """Return year, month, security and amounts, by date then security name."""
    return _BY_YEAR_MONTH_SECURITY.run(db, depot_ids)