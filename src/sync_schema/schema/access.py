"""
Python evaluation of the catalog's RLS policies, mirroring PostgreSQL's
permissive-policy rules:

- no policy for the command: denied
- select / delete: some policy's USING holds for the existing row
- insert: some policy's WITH CHECK holds for the new row
- update: some policy's USING holds for the old row and its WITH CHECK
  (falling back to USING) holds for the new row
"""

from datetime import datetime, timezone
from uuid import UUID

from sync_schema.schema.catalog import policies_for
from sync_schema.schema.conditions import Row
from sync_schema.schema.units import Command, CreatePolicy


def _check(policy: CreatePolicy, row: Row, uid: UUID | None, now: datetime) -> bool:
    condition = policy.with_check if policy.with_check is not None else policy.using
    return condition is not None and condition.evaluate(row, uid, now)


def _using(policy: CreatePolicy, row: Row, uid: UUID | None, now: datetime) -> bool:
    return policy.using is not None and policy.using.evaluate(row, uid, now)


def is_permitted(
    table: str,
    command: Command,
    uid: UUID | None,
    *,
    row: Row | None = None,
    new_row: Row | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Return True if identity uid may run command against row (and produce new_row).

    Args:
        table: catalog table name (books, book_configs, book_notes, files)
        command: select, insert, update or delete
        uid: requesting identity, None for anonymous
        row: existing row (select, update, delete)
        new_row: row as written (insert, update)
        now: evaluation time; defaults to the current UTC time
    """
    now = now or datetime.now(timezone.utc)
    policies = [p for p in policies_for(table) if p.command == command]
    if not policies:
        return False
    if command in ("select", "delete"):
        if row is None:
            raise ValueError(f"{command} needs the existing row")
        return any(_using(p, row, uid, now) for p in policies)
    if command == "insert":
        if new_row is None:
            raise ValueError("insert needs the new row")
        return any(_check(p, new_row, uid, now) for p in policies)
    if row is None or new_row is None:
        raise ValueError("update needs both the existing and the new row")
    return any(
        _using(p, row, uid, now) and _check(p, new_row, uid, now) for p in policies
    )
