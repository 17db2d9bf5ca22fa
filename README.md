# schrevind

A SQLite-backed storage layer for recording dividend payments. It keeps
depots, groups, group members and their roles, per-group currencies, an audit
log and detailed dividend entries, including a breakdown of domestic tax. It
can also pull the raw figures needed for yearly, monthly and per-security
dividend analyses.

The package uses only the Python standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Opening a database

```python
from schrevind.database import open_database

db = open_database("dividends.sqlite")
db.migrate()  # creates tables, the system group (id 1) and template currencies
...
db.close()
```

`Database` is also a context manager that closes the connection on exit.
`migrate()` is idempotent. It creates the reserved system group and the
template currencies EUR and USD (group id 0). `db.transaction()` runs a block
in one transaction and rolls it back if the block raises. The raw
`sqlite3.Connection` is available as `db.sql`.

## Records are returned, not changed in place

Every create and update function returns a new, normalized record (trimmed
text, timestamps, and on create the new ID). The record you pass in stays as
it was, so always use the return value:

```python
group = create_group(db, Group(name="Family"))
print(group.id)
```

## Groups and members

```python
from schrevind.groups import Group, create_group_with_default_currencies_and_admin
from schrevind.group_users import add_group_member, list_group_members_by_group_id

group = create_group_with_default_currencies_and_admin(db, Group(name="Family"), admin_user_id)
add_group_member(db, group.id, other_user_id, "")   # plain member, no role
add_group_member(db, group.id, other_user_id, "admin")  # promote
members = list_group_members_by_group_id(db, group.id)
```

The only role that can be granted on a group is `"admin"`. A group must keep
at least one admin: adding or demoting a member with an empty role, or
removing a member with `remove_group_member`, raises `LastGroupAdminError`
when the group would be left without an admin. So give a new group its admin
first (as `create_group_with_default_currencies_and_admin` does). The system
group cannot be renamed or deleted; `delete_group` also removes the group's
withholding tax defaults.

## Currencies

```python
from schrevind.currencies import (
    Currency, CurrencyStatus, create_currency, get_currency_by_code_and_group_id,
)

chf = create_currency(db, Currency(group_id=group.id, currency="chf", name="Swiss Franc",
                                   decimal_places=2, status=CurrencyStatus.ACTIVE))
assert chf.currency == "CHF"
get_currency_by_code_and_group_id(db, "CHF", group.id)
```

`copy_default_currencies_to_group` copies the group-0 templates into a group.

## Depots and dividend entries

```python
from schrevind.depots import Depot, create_depot
from schrevind.dividend_entries import (
    DividendEntry, DividendEntryListFilters, create_dividend_entry,
    list_dividend_entries_by_depot_id,
)
from schrevind.inland_tax_templates import InlandTaxDetail

depot = create_depot(db, Depot(name="Main", base_currency="EUR", status="active"))

entry = create_dividend_entry(db, DividendEntry(
    depot_id=depot.id, security_id=security_id, pay_date="2024-04-15",
    gross_amount="12.30", gross_currency="EUR",
    inland_tax_details=[InlandTaxDetail(code="capital_gains_tax", label="Kapitalertragsteuer",
                                        amount="2.00", currency="EUR")],
))

page = list_dividend_entries_by_depot_id(
    db, depot.id, 20, 0, "PayDate", "DESC", DividendEntryListFilters(year=2024, search="cola"),
)
```

Amounts are stored as the text that was entered; the store does not round or
reinterpret them. Sorting accepts `PayDate` (the default), `ExDate` and
`SecurityName`; direction `ASC` (default) or `DESC`. Inland tax details are
kept as a JSON array; `encode_inland_tax_details` and
`decode_inland_tax_details` convert them. `INLAND_TAX_TEMPLATES` in
`schrevind.inland_tax_templates` holds the German template.

Queries scoped by a user's depot memberships and roles are in
`schrevind.dividend_access`, for example
`list_accessible_dividend_entries_by_user` and
`get_first_accessible_dividend_entry_year_by_user` (which returns `None`
when nothing is accessible).

## Analyses

`schrevind.analyses` returns the raw rows for a set of depots. The caller
sums them by year, by month, by security and year, or by month and security.

## Audit log

`schrevind.audit_log.write_audit_log` appends an `AuditLog` entry and returns
it with its ID; `list_audit_log_by_entity` and `list_audit_log_by_user` read
entries back, oldest first.

## CORS

`schrevind.cors.apply_cors(method, origin, allowed_origins)` returns a
`CorsDecision`. It holds the headers to send, whether the request may go on,
and which status and body to answer with when it may not. It makes no
response itself.

## Errors

Invalid arguments raise `ValueError`. Failing SQL statements, and use of a
closed database, raise `DatabaseError` from `schrevind.database`;
`LastGroupAdminError` is a subclass of it. A lookup that finds nothing
returns `None`.

## What this package does not do

- It has no functions for users, securities, depot memberships or
  withholding tax defaults. `migrate()` creates their tables, but rows must be
  written with SQL through `db.sql`, for example:

  ```python
  cur = db.sql.execute("INSERT INTO users (email) VALUES (?)", ("member@example.com",))
  user_id = cur.lastrowid
  db.sql.execute(
      "INSERT INTO memberships (entity_type, entity_id, user_id, role) VALUES ('depot', ?, ?, 'viewer')",
      (depot.id, user_id),
  )
  ```

  Dividend entries need an existing depot and security row, since foreign
  keys are enforced.
- It does no password handling, sessions or permission checks.
- It runs no web server and has no command-line program; it is a library to
  build those on.