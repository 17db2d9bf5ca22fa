import pytest

from schrevind.currencies import get_currency_by_code_and_group_id
from schrevind.database import (
    ENTITY_TYPE_GROUP,
    ROLE_GROUP_ADMIN,
    SYSTEM_GROUP_ID,
    DatabaseError,
    open_database,
)
from schrevind.groups import (
    Group,
    create_group,
    create_group_with_default_currencies,
    create_group_with_default_currencies_and_admin,
    delete_group,
    get_group_by_id,
    list_groups,
    update_group,
)


@pytest.fixture
def db(tmp_path):
    database = open_database(tmp_path / "test.sqlite")
    database.migrate()
    yield database
    database.close()


def _create_user(db, email):
    cursor = db.sql.execute("INSERT INTO users (email, firstname) VALUES (?, ?);", (email, "Example"))
    return cursor.lastrowid


def test_create_group_with_default_currencies_copies_template_currencies(db):
    group = create_group_with_default_currencies(db, Group(name="Example Group"))

    eur = get_currency_by_code_and_group_id(db, "EUR", group.id)
    assert eur is not None
    assert eur.group_id == group.id
    assert eur.currency == "EUR"
    assert eur.decimal_places == 2

    usd = get_currency_by_code_and_group_id(db, "USD", group.id)
    assert usd is not None
    assert usd.group_id == group.id
    assert usd.currency == "USD"
    assert usd.decimal_places == 2


def test_create_group_with_default_currencies_and_admin_assigns_creator(db):
    creator_id = _create_user(db, "creator@example.com")

    group = create_group_with_default_currencies_and_admin(
        db, Group(name="Example Group With Admin"), creator_id
    )

    in_group = db.sql.execute(
        "SELECT 1 FROM group_users WHERE group_id = ? AND user_id = ?;", (group.id, creator_id)
    ).fetchone()
    assert in_group is not None

    role = db.sql.execute(
        "SELECT role FROM memberships WHERE entity_type = ? AND entity_id = ? AND user_id = ?;",
        (ENTITY_TYPE_GROUP, group.id, creator_id),
    ).fetchone()
    assert role == (ROLE_GROUP_ADMIN,)
    assert get_currency_by_code_and_group_id(db, "EUR", group.id) is not None


def test_create_group_with_admin_rolls_back_on_unknown_user(db):
    with pytest.raises(DatabaseError):
        create_group_with_default_currencies_and_admin(db, Group(name="Broken"), 9999)
    assert [g.id for g in list_groups(db)] == [SYSTEM_GROUP_ID]


def test_create_group_with_admin_rejects_invalid_user_id(db):
    with pytest.raises(ValueError):
        create_group_with_default_currencies_and_admin(db, Group(name="X"), 0)


def test_migration_seeds_system_group(db):
    system = get_group_by_id(db, SYSTEM_GROUP_ID)
    assert system is not None
    assert system.name == "System"


def test_create_group_strips_name_and_round_trips(db):
    created = create_group(db, Group(name="  Family  "))
    assert created.name == "Family"
    assert created.id > SYSTEM_GROUP_ID
    assert created.created_at > 0
    assert get_group_by_id(db, created.id) == created


def test_create_group_requires_name(db):
    with pytest.raises(ValueError, match="name is required"):
        create_group(db, Group(name="   "))


def test_get_group_by_id_missing_and_invalid(db):
    assert get_group_by_id(db, 4242) is None
    with pytest.raises(ValueError):
        get_group_by_id(db, 0)


def test_update_group_renames(db):
    created = create_group(db, Group(name="Old"))
    updated = update_group(db, Group(id=created.id, name=" New ", created_at=created.created_at))
    assert updated.name == "New"
    assert get_group_by_id(db, created.id).name == "New"


def test_system_group_cannot_be_modified_or_deleted(db):
    with pytest.raises(ValueError, match="system group cannot be modified"):
        update_group(db, Group(id=SYSTEM_GROUP_ID, name="Other"))
    with pytest.raises(ValueError, match="system group cannot be deleted"):
        delete_group(db, SYSTEM_GROUP_ID)
    assert get_group_by_id(db, SYSTEM_GROUP_ID).name == "System"


def test_delete_group_removes_withholding_tax_defaults(db):
    group = create_group(db, Group(name="Doomed"))
    db.sql.execute(
        "INSERT INTO withholding_tax_defaults (group_id, country_code) VALUES (?, ?);",
        (group.id, "US"),
    )
    delete_group(db, group.id)
    assert get_group_by_id(db, group.id) is None
    remaining = db.sql.execute(
        "SELECT COUNT(*) FROM withholding_tax_defaults WHERE group_id = ?;", (group.id,)
    ).fetchone()
    assert remaining == (0,)


def test_list_groups_ordered_by_id(db):
    first = create_group(db, Group(name="B"))
    second = create_group(db, Group(name="A"))
    assert [g.id for g in list_groups(db)] == [SYSTEM_GROUP_ID, first.id, second.id]


def test_closed_database_raises(db):
    db.close()
    with pytest.raises(DatabaseError):
        list_groups(db)