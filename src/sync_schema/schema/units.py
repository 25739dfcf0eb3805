"""
Schema-change units. Each unit renders to exactly one DDL statement, either
plain or wrapped in an existence guard.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from sync_schema.schema.conditions import Condition

Command = Literal["select", "insert", "update", "delete"]

_SIMPLE_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$")

# Fully reserved PostgreSQL keywords; these must be quoted as column or table names.
RESERVED_WORDS = frozenset(
    {
        "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
        "asymmetric", "both", "case", "cast", "check", "collate", "column",
        "constraint", "create", "current_catalog", "current_date",
        "current_role", "current_time", "current_timestamp", "current_user",
        "default", "deferrable", "desc", "distinct", "do", "else", "end",
        "except", "false", "fetch", "for", "foreign", "from", "grant",
        "group", "having", "in", "initially", "intersect", "into", "lateral",
        "leading", "limit", "localtime", "localtimestamp", "not", "null",
        "offset", "on", "only", "or", "order", "placing", "primary",
        "references", "returning", "select", "session_user", "some",
        "symmetric", "system_user", "table", "then", "to", "trailing", "true",
        "union", "unique", "user", "using", "variadic", "when", "where",
        "window", "with",
    }
)


def quote_ident(name: str) -> str:
    """Quote an identifier only when PostgreSQL requires it."""
    if _SIMPLE_IDENT.match(name) and name not in RESERVED_WORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    nullable: bool = True
    default: str | None = None

    def render(self) -> str:
        parts = [quote_ident(self.name), self.type, "null" if self.nullable else "not null"]
        if self.default is not None:
            parts.append(f"default {self.default}")
        return " ".join(parts)


@dataclass(frozen=True)
class PrimaryKey:
    name: str
    columns: tuple[str, ...]

    def render(self) -> str:
        return f"constraint {quote_ident(self.name)} primary key ({_column_list(self.columns)})"


@dataclass(frozen=True)
class Unique:
    name: str
    columns: tuple[str, ...]

    def render(self) -> str:
        return f"constraint {quote_ident(self.name)} unique ({_column_list(self.columns)})"


@dataclass(frozen=True)
class ForeignKey:
    """Reference into a table this catalog does not create (e.g. auth.users)."""

    name: str
    columns: tuple[str, ...]
    ref_table: str
    ref_columns: tuple[str, ...]
    on_delete: str = "cascade"

    def render(self) -> str:
        return (
            f"constraint {quote_ident(self.name)} foreign key ({_column_list(self.columns)}) "
            f"references {self.ref_table} ({_column_list(self.ref_columns)}) "
            f"on delete {self.on_delete}"
        )


Constraint = PrimaryKey | Unique | ForeignKey


def _column_list(columns: tuple[str, ...]) -> str:
    return ", ".join(quote_ident(c) for c in columns)


def qualified(schema: str, table: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(table)}"


class SchemaUnit(ABC):
    """One definitional statement: create table / enable RLS / create index / create policy."""

    kind: str = ""
    schema: str
    table: str

    @property
    @abstractmethod
    def name(self) -> str:
        """Short label used in logs and error messages."""

    @abstractmethod
    def render(self, guarded: bool = False) -> str:
        """SQL for this unit, without a trailing semicolon."""

    @property
    def qualified_table(self) -> str:
        return qualified(self.schema, self.table)


@dataclass(frozen=True)
class CreateTable(SchemaUnit):
    table: str
    columns: tuple[Column, ...]
    constraints: tuple[Constraint, ...] = ()
    schema: str = "public"
    tablespace: str | None = "pg_default"

    kind = "table"

    @property
    def name(self) -> str:
        return f"table {self.schema}.{self.table}"

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise KeyError(name)

    def render(self, guarded: bool = False) -> str:
        body = [col.render() for col in self.columns]
        body.extend(c.render() for c in self.constraints)
        head = "create table if not exists" if guarded else "create table"
        lines = ",\n".join(f"  {line}" for line in body)
        sql = f"{head} {self.qualified_table} (\n{lines}\n)"
        if self.tablespace:
            sql += f" tablespace {quote_ident(self.tablespace)}"
        return sql


@dataclass(frozen=True)
class EnableRowLevelSecurity(SchemaUnit):
    """Enabling RLS twice is a no-op in PostgreSQL, so no guard is needed."""

    table: str
    schema: str = "public"

    kind = "rls"

    @property
    def name(self) -> str:
        return f"row level security on {self.schema}.{self.table}"

    def render(self, guarded: bool = False) -> str:
        return f"alter table {self.qualified_table} enable row level security"


@dataclass(frozen=True)
class CreateIndex(SchemaUnit):
    index: str
    table: str
    columns: tuple[str, ...]
    schema: str = "public"

    kind = "index"

    @property
    def name(self) -> str:
        return f"index {self.index}"

    def render(self, guarded: bool = False) -> str:
        head = "create index if not exists" if guarded else "create index"
        return (
            f"{head} {quote_ident(self.index)}\n"
            f"on {self.qualified_table} ({_column_list(self.columns)})"
        )


@dataclass(frozen=True)
class CreatePolicy(SchemaUnit):
    """
    Permissive RLS policy. PostgreSQL has no "create policy if not exists",
    so the guarded form checks pg_policies inside a DO block.
    """

    policy: str
    table: str
    command: Command
    using: Condition | None = None
    with_check: Condition | None = None
    roles: tuple[str, ...] = ()
    schema: str = "public"

    kind = "policy"

    def __post_init__(self) -> None:
        if self.command == "insert" and self.using is not None:
            raise ValueError("insert policies only accept a with check condition")
        if self.command in ("select", "delete") and self.with_check is not None:
            raise ValueError(f"{self.command} policies only accept a using condition")
        if self.using is None and self.with_check is None:
            raise ValueError("policy needs a using or with check condition")

    @property
    def name(self) -> str:
        return f"policy {self.policy} on {self.schema}.{self.table}"

    def render(self, guarded: bool = False) -> str:
        lines = [
            f"create policy {quote_ident(self.policy)} on {self.qualified_table}",
            f"for {self.command}",
        ]
        if self.roles:
            lines.append("to " + ", ".join(quote_ident(r) for r in self.roles))
        if self.using is not None:
            lines.append(f"using ({self.using.render()})")
        if self.with_check is not None:
            lines.append(f"with check ({self.with_check.render()})")
        statement = "\n".join(lines)
        if not guarded:
            return statement
        body = "\n".join(f"    {line}" for line in statement.splitlines())
        return (
            "do $$\n"
            "begin\n"
            "  if not exists (\n"
            "    select 1 from pg_policies\n"
            f"    where schemaname = {quote_literal(self.schema)}\n"
            f"      and tablename = {quote_literal(self.table)}\n"
            f"      and policyname = {quote_literal(self.policy)}\n"
            "  ) then\n"
            f"{body};\n"
            "  end if;\n"
            "end\n"
            "$$"
        )
