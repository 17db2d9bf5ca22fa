import pytest

from schrevind.database import (
    ENTITY_TYPE_GROUP,
    ENTITY_TYPE_SYSTEM,
    ROLE_GROUP_ADMIN,
    SYSTEM_GROUP_ID,
    DatabaseError,
    open_database,
)
from schrevind.group_users import (
    GroupUser,
    LastGroupAdminError,
    add_group_member,
    add_user_to_group,
    is_user_in_group,
    list_all_group_users,
    list_group_members_by_group_id,
    list_groups_by_user_id,
    list_groups_with_role_by_user_id,
    remove_group_member,
    remove_user_from_group,
)
from schrevind.groups import Group, create_group


@pytest.fixture
def db(tmp_path):
    database = open_database(tmp_path / "test.sqlite")
    database.migrate()
    yield database
    database.close()


def make_user(db, email, first="", last=""):
    password = "secret"
    cursor = db.sql.execute(
        "INSERT INTO users (email, password, firstname, lastname, locale) VALUES (?, ?, ?, ?, 'en-US');",
        (email, password, first, last),
    )
    return cursor.lastrowid


def grant(db, entity_type, entity_id, user_id, role):
    db.sql.execute(
        "INSERT INTO memberships (entity_type, entity_id, user_id, role) VALUES (?, ?, ?, ?);",
        (entity_type, entity_id, user_id, role),
    )


def group_role(db, group_id, user_id):
    row = db.sql.execute(
        "SELECT role FROM memberships WHERE entity_type = ? AND entity_id = ? AND user_id = ?;",
        (ENTITY_TYPE_GROUP, group_id, user_id),
    ).fetchone()
    return row[0] if row else None


def test_list_group_members_includes_explicit_role(db):
    admin_id = make_user(db, "admin@example.com", "Group", "Admin")
    member_id = make_user(db, "member@example.com", "Group", "Member")
    group = create_group(db, Group(name="Example Group"))

    add_user_to_group(db, group.id, admin_id)
    add_user_to_group(db, group.id, member_id)
    grant(db, ENTITY_TYPE_GROUP, group.id, admin_id, ROLE_GROUP_ADMIN)

    members = list_group_members_by_group_id(db, group.id)
    assert len(members) == 2
    roles = {m.id: m.role for m in members}
    assert roles[admin_id] == ROLE_GROUP_ADMIN
    assert roles[member_id] == ""
    assert members[0].email == "admin@example.com"
    assert members[0].first_name == "Group"


def test_add_group_member_sets_and_clears_group_role(db):
    admin_id = make_user(db, "admin-role@example.com")
    member_id = make_user(db, "member-role@example.com")
    group = create_group(db, Group(name="Role Group"))

    assert add_group_member(db, group.id, admin_id, ROLE_GROUP_ADMIN) is True
    assert add_group_member(db, group.id, member_id, "") is True

    assert group_role(db, group.id, admin_id) == ROLE_GROUP_ADMIN
    assert group_role(db, group.id, member_id) is None

    assert add_group_member(db, group.id, member_id, ROLE_GROUP_ADMIN) is False
    assert group_role(db, group.id, member_id) == ROLE_GROUP_ADMIN

    assert add_group_member(db, group.id, member_id, "") is False
    assert group_role(db, group.id, member_id) is None


def test_remove_group_member_clears_role_and_blocks_last_admin(db):
    admin_id = make_user(db, "last-admin@example.com")
    other_id = make_user(db, "other-admin@example.com")
    group = create_group(db, Group(name="Admin Guard Group"))

    add_group_member(db, group.id, admin_id, ROLE_GROUP_ADMIN)
    add_group_member(db, group.id, other_id, ROLE_GROUP_ADMIN)

    assert remove_group_member(db, group.id, other_id) is True
    assert group_role(db, group.id, other_id) is None
    assert is_user_in_group(db, group.id, other_id) is False

    with pytest.raises(LastGroupAdminError):
        remove_group_member(db, group.id, admin_id)
    assert is_user_in_group(db, group.id, admin_id) is True
    assert group_role(db, group.id, admin_id) == ROLE_GROUP_ADMIN


def test_add_group_member_blocks_clearing_last_admin_role(db):
    admin_id = make_user(db, "clear-last-admin@example.com")
    group = create_group(db, Group(name="Clear Last Admin Group"))
    add_group_member(db, group.id, admin_id, ROLE_GROUP_ADMIN)

    with pytest.raises(LastGroupAdminError):
        add_group_member(db, group.id, admin_id, "")
    assert group_role(db, group.id, admin_id) == ROLE_GROUP_ADMIN


def test_add_plain_member_to_group_without_admin_is_rolled_back(db):
    user_id = make_user(db, "plain@example.com")
    group = create_group(db, Group(name="No Admin Group"))

    with pytest.raises(LastGroupAdminError):
        add_group_member(db, group.id, user_id, "")
    assert is_user_in_group(db, group.id, user_id) is False


def test_last_group_admin_error_is_database_error():
    assert issubclass(LastGroupAdminError, DatabaseError)
    assert str(LastGroupAdminError()) == "last group admin cannot be removed"


def test_add_group_member_rejects_invalid_role(db):
    user_id = make_user(db, "bad-role@example.com")
    group = create_group(db, Group(name="Bad Role Group"))
    with pytest.raises(ValueError, match="invalid group role"):
        add_group_member(db, group.id, user_id, "emperor")


def test_add_and_remove_user_to_group(db):
    user_id = make_user(db, "user@example.com")
    group = create_group(db, Group(name="Plain Group"))

    assert add_user_to_group(db, group.id, user_id) is True
    assert add_user_to_group(db, group.id, user_id) is False
    assert is_user_in_group(db, group.id, user_id) is True

    assert remove_user_from_group(db, group.id, user_id) is True
    assert remove_user_from_group(db, group.id, user_id) is False
    assert is_user_in_group(db, group.id, user_id) is False


@pytest.mark.parametrize(
    "func",
    [add_user_to_group, remove_user_from_group, is_user_in_group, remove_group_member],
)
@pytest.mark.parametrize("group_id,user_id", [(0, 1), (1, 0), (-1, 1)])
def test_invalid_ids_are_rejected(db, func, group_id, user_id):
    with pytest.raises(ValueError, match="must be > 0"):
        func(db, group_id, user_id)


def test_list_groups_by_user_id(db):
    user_id = make_user(db, "groups@example.com")
    first = create_group(db, Group(name="First"))
    second = create_group(db, Group(name="Second"))
    add_user_to_group(db, second.id, user_id)
    add_user_to_group(db, first.id, user_id)

    groups = list_groups_by_user_id(db, user_id)
    assert [g.name for g in groups] == ["First", "Second"]
    assert [g.id for g in groups] == [first.id, second.id]


def test_list_groups_with_role_by_user_id(db):
    user_id = make_user(db, "roles@example.com")
    group = create_group(db, Group(name="Managed"))
    plain = create_group(db, Group(name="Plain"))
    add_user_to_group(db, SYSTEM_GROUP_ID, user_id)
    add_user_to_group(db, group.id, user_id)
    add_user_to_group(db, plain.id, user_id)
    grant(db, ENTITY_TYPE_GROUP, group.id, user_id, ROLE_GROUP_ADMIN)
    grant(db, ENTITY_TYPE_SYSTEM, SYSTEM_GROUP_ID, user_id, "admin")

    result = list_groups_with_role_by_user_id(db, user_id)
    assert [(g.id, g.name, g.role) for g in result] == [
        (SYSTEM_GROUP_ID, "System", "admin"),
        (group.id, "Managed", ROLE_GROUP_ADMIN),
        (plain.id, "Plain", ""),
    ]


def test_list_all_group_users_orders_by_group_then_user(db):
    first_user = make_user(db, "a@example.com")
    second_user = make_user(db, "b@example.com")
    group = create_group(db, Group(name="Ordered"))
    add_user_to_group(db, group.id, second_user)
    add_user_to_group(db, group.id, first_user)
    add_user_to_group(db, SYSTEM_GROUP_ID, second_user)

    assert list_all_group_users(db) == [
        GroupUser(SYSTEM_GROUP_ID, second_user),
        GroupUser(group.id, first_user),
        GroupUser(group.id, second_user),
    ]


def test_closed_database_raises(db):
    db.close()
    with pytest.raises(DatabaseError, match="db not initialized"):
        list_all_group_users(db)