from dataclasses import replace

import pytest

from schrevind.database import ENTITY_TYPE_DEPOT, open_database
from schrevind.depots import Depot, create_depot
from schrevind.dividend_access import (
    count_accessible_dividend_entries_by_security_id,
    count_accessible_dividend_entries_by_user,
    get_first_accessible_dividend_entry_year_by_user,
    get_first_dividend_entry_year_by_depot_id,
    list_accessible_dividend_entries_by_security_id,
    list_accessible_dividend_entries_by_user,
)
from schrevind.dividend_entries import (
    DividendEntry,
    DividendEntryListFilters,
    create_dividend_entry,
)
from schrevind.groups import Group, create_group

VIEWER = "viewer"


@pytest.fixture
def db(tmp_path):
    database = open_database(str(tmp_path / "test.sqlite"))
    database.migrate()
    yield database
    database.close()


def _create_user(db, email):
    cursor = db.sql.execute(
        "INSERT INTO users (password, firstname, lastname, email) VALUES (?, ?, ?, ?);",
        ("secret", "Dividend", "Tester", email),
    )
    return cursor.lastrowid


def _grant(db, depot_id, user_id, role):
    db.sql.execute(
        "INSERT INTO memberships (entity_type, entity_id, user_id, role, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, 0, 0);",
        (ENTITY_TYPE_DEPOT, depot_id, user_id, role),
    )


def _valid_entry(db):
    group = create_group(db, Group(name="Dividend Entry Test Group"))
    depot = create_depot(db, Depot(name="Dividend Entry Depot", base_currency="EUR", status="active"))
    cursor = db.sql.execute(
        "INSERT INTO securities (group_id, name, isin, status) VALUES (?, ?, ?, ?);",
        (group.id, "Dividend Entry Security", "DE0000000008", "active"),
    )
    return DividendEntry(
        depot_id=depot.id,
        security_id=cursor.lastrowid,
        pay_date="2026-01-15",
        ex_date="2026-01-10",
        security_name="Dividend Entry Security",
        security_isin="DE0000000008",
        quantity="10",
        gross_amount="12.30",
        gross_currency="EUR",
        payout_amount="9.00",
        payout_currency="EUR",
    )


def test_list_accessible_applies_optional_filters(db):
    first = _valid_entry(db)
    first = create_dividend_entry(
        db,
        replace(
            first,
            pay_date="2024-04-15",
            security_name="Cola Drinks AG",
            security_isin="DE000COLA001",
            security_wkn="COLA01",
            security_symbol="COL",
        ),
    )
    second = _valid_entry(db)
    create_dividend_entry(
        db,
        replace(
            second,
            pay_date="2025-05-15",
            security_name="Chocolate AG",
            security_isin="AT000CHOC001",
            security_wkn="CHOC01",
            security_symbol="CHO",
        ),
    )

    filters = DividendEntryListFilters(search="cola", year=2024, depot_id=first.depot_id)
    items = list_accessible_dividend_entries_by_user(db, 1, True, None, 20, 0, "PayDate", "ASC", filters)
    assert [item.id for item in items] == [first.id]
    assert count_accessible_dividend_entries_by_user(db, 1, True, None, filters) == 1


def test_first_year_by_depot(db):
    newer = create_dividend_entry(db, replace(_valid_entry(db), pay_date="2024-05-15"))
    other = _valid_entry(db)
    create_dividend_entry(db, replace(other, depot_id=newer.depot_id, pay_date="2021-04-15"))
    assert get_first_dividend_entry_year_by_depot_id(db, newer.depot_id) == 2021


def test_first_year_by_depot_without_entries(db):
    depot = create_depot(db, Depot(name="Empty"))
    assert get_first_dividend_entry_year_by_depot_id(db, depot.id) is None


def test_first_year_by_depot_invalid_pay_date(db):
    entry = create_dividend_entry(db, replace(_valid_entry(db), pay_date="ab-01"))
    with pytest.raises(ValueError, match="invalid pay_date"):
        get_first_dividend_entry_year_by_depot_id(db, entry.depot_id)


def test_first_accessible_year_by_user(db):
    user_id = _create_user(db, "dividend-tester@example.com")
    entry = create_dividend_entry(db, replace(_valid_entry(db), pay_date="2022-03-15"))
    _grant(db, entry.depot_id, user_id, VIEWER)

    assert get_first_accessible_dividend_entry_year_by_user(db, user_id, False, [VIEWER]) == 2022

    other_id = _create_user(db, "other-dividend-tester@example.com")
    assert get_first_accessible_dividend_entry_year_by_user(db, other_id, False, [VIEWER]) is None


def test_first_accessible_year_respects_roles(db):
    user_id = _create_user(db, "roles@example.com")
    entry = create_dividend_entry(db, replace(_valid_entry(db), pay_date="2020-02-01"))
    _grant(db, entry.depot_id, user_id, VIEWER)
    assert get_first_accessible_dividend_entry_year_by_user(db, user_id, False, ["owner"]) is None
    assert get_first_accessible_dividend_entry_year_by_user(db, user_id, False, []) == 2020


def test_list_by_membership_excludes_other_depots(db):
    user_id = _create_user(db, "member@example.com")
    mine = create_dividend_entry(db, _valid_entry(db))
    create_dividend_entry(db, _valid_entry(db))
    _grant(db, mine.depot_id, user_id, VIEWER)

    items = list_accessible_dividend_entries_by_user(db, user_id, False, [VIEWER], 10, 0)
    assert [item.id for item in items] == [mine.id]
    assert count_accessible_dividend_entries_by_user(db, user_id, False, [VIEWER]) == 1
    assert count_accessible_dividend_entries_by_user(db, user_id, True, None) == 2


def test_list_sorted_descending(db):
    base = _valid_entry(db)
    early = create_dividend_entry(db, replace(base, pay_date="2021-01-01"))
    late = create_dividend_entry(db, replace(base, pay_date="2023-01-01"))
    items = list_accessible_dividend_entries_by_user(db, 1, True, None, 10, 0, "PayDate", "desc")
    assert [item.id for item in items] == [late.id, early.id]


def test_list_by_security(db):
    user_id = _create_user(db, "security@example.com")
    base = _valid_entry(db)
    first = create_dividend_entry(db, replace(base, pay_date="2022-01-01"))
    second = create_dividend_entry(db, replace(base, pay_date="2023-01-01"))
    create_dividend_entry(db, _valid_entry(db))
    _grant(db, base.depot_id, user_id, VIEWER)

    items = list_accessible_dividend_entries_by_security_id(
        db, user_id, False, [VIEWER], base.security_id, 10, 0
    )
    assert [item.id for item in items] == [first.id, second.id]
    filters = DividendEntryListFilters(year=2023)
    assert count_accessible_dividend_entries_by_security_id(
        db, user_id, False, [VIEWER], base.security_id, filters
    ) == 1
    assert count_accessible_dividend_entries_by_security_id(db, 1, True, None, base.security_id) == 2


def test_invalid_sort_and_direction(db):
    with pytest.raises(ValueError, match="invalid sort"):
        list_accessible_dividend_entries_by_user(db, 1, True, None, 10, 0, "Bogus", "ASC")
    with pytest.raises(ValueError, match="invalid direction"):
        list_accessible_dividend_entries_by_user(db, 1, True, None, 10, 0, "PayDate", "UP")


def test_argument_validation(db):
    with pytest.raises(ValueError, match="userID must be > 0"):
        count_accessible_dividend_entries_by_user(db, 0, True, None)
    with pytest.raises(ValueError, match="securityID must be > 0"):
        count_accessible_dividend_entries_by_security_id(db, 1, True, None, 0)
    with pytest.raises(ValueError, match="limit must be >= 0"):
        list_accessible_dividend_entries_by_user(db, 1, True, None, -1, 0)
    with pytest.raises(ValueError, match="offset must be >= 0"):
        list_accessible_dividend_entries_by_security_id(db, 1, True, None, 1, 10, -1)
    with pytest.raises(ValueError, match="depotID must be > 0"):
        get_first_dividend_entry_year_by_depot_id(db, 0)