"""
Book-sync schema catalog: books, book_configs, book_notes and files, with
their row-level-security policies. auth.users is provided by the database.
"""

from collections.abc import Iterator

from sync_schema.schema.conditions import After, AllOf, AnyOf, IsNull, OwnedBy
from sync_schema.schema.units import (
    Column,
    CreateIndex,
    CreatePolicy,
    CreateTable,
    EnableRowLevelSecurity,
    ForeignKey,
    PrimaryKey,
    SchemaUnit,
    Unique,
)

USERS_TABLE = "auth.users"
TIMESTAMPTZ = "timestamp with time zone"


def _owner_columns() -> tuple[Column, ...]:
    return (
        Column("user_id", "uuid", nullable=False),
        Column("book_hash", "text", nullable=False),
    )


def _timestamps(*, updated: bool = True) -> tuple[Column, ...]:
    cols = [Column("created_at", TIMESTAMPTZ, default="now()")]
    if updated:
        cols.append(Column("updated_at", TIMESTAMPTZ, default="now()"))
    cols.append(Column("deleted_at", TIMESTAMPTZ))
    return tuple(cols)


def _user_fkey(table: str) -> ForeignKey:
    return ForeignKey(f"{table}_user_id_fkey", ("user_id",), USERS_TABLE, ("id",))


BOOKS = CreateTable(
    "books",
    columns=(
        *_owner_columns(),
        Column("format", "text"),  # EPUB | PDF | MOBI | CBZ | FB2 | FBZ
        Column("title", "text"),
        Column("author", "text"),
        Column("group", "text"),
        Column("tags", "text[]"),
        *_timestamps(),
        Column("uploaded_at", TIMESTAMPTZ),
        Column("progress", "integer[]"),
        Column("group_id", "text"),
        Column("group_name", "text"),
    ),
    constraints=(
        PrimaryKey("books_pkey", ("user_id", "book_hash")),
        _user_fkey("books"),
    ),
)

BOOK_CONFIGS = CreateTable(
    "book_configs",
    columns=(
        *_owner_columns(),
        Column("location", "text"),
        Column("progress", "jsonb"),
        Column("search_config", "jsonb"),
        Column("view_settings", "jsonb"),
        *_timestamps(),
    ),
    constraints=(
        PrimaryKey("book_configs_pkey", ("user_id", "book_hash")),
        _user_fkey("book_configs"),
    ),
)

BOOK_NOTES = CreateTable(
    "book_notes",
    columns=(
        *_owner_columns(),
        Column("id", "text", nullable=False),
        Column("type", "text"),
        Column("cfi", "text"),
        Column("text", "text"),
        Column("style", "text"),
        Column("color", "text"),
        Column("note", "text"),
        *_timestamps(),
    ),
    constraints=(
        PrimaryKey("book_notes_pkey", ("user_id", "book_hash", "id")),
        _user_fkey("book_notes"),
    ),
)

FILES = CreateTable(
    "files",
    columns=(
        Column("id", "uuid", nullable=False, default="gen_random_uuid()"),
        Column("user_id", "uuid", nullable=False),
        Column("book_hash", "text"),
        Column("file_key", "text", nullable=False),
        Column("file_size", "bigint", nullable=False),
        *_timestamps(updated=False),
    ),
    constraints=(
        PrimaryKey("files_pkey", ("id",)),
        Unique("files_file_key_key", ("file_key",)),
        _user_fkey("files"),
    ),
)

TABLES: tuple[CreateTable, ...] = (BOOKS, BOOK_CONFIGS, BOOK_NOTES, FILES)

FILE_INDEXES = (
    CreateIndex("idx_files_user_id_deleted_at", "files", ("user_id", "deleted_at")),
    CreateIndex("idx_files_file_key", "files", ("file_key",)),
    CreateIndex("idx_files_file_key_deleted_at", "files", ("file_key", "deleted_at")),
)


def owner_policies(table: str) -> tuple[CreatePolicy, ...]:
    """select/insert/update/delete restricted to the row's owner, for authenticated users."""
    owner = OwnedBy(subselect=True)
    roles = ("authenticated",)
    return (
        CreatePolicy(f"select_{table}", table, "select", using=owner, roles=roles),
        CreatePolicy(f"insert_{table}", table, "insert", with_check=owner, roles=roles),
        CreatePolicy(f"update_{table}", table, "update", using=owner, roles=roles),
        CreatePolicy(f"delete_{table}", table, "delete", using=owner, roles=roles),
    )


def file_policies() -> tuple[CreatePolicy, ...]:
    """
    Files are listed only while active, and an update may clear deleted_at or
    move it into the future but never into the past.

    The update WITH CHECK only constrains deleted_at, so an owner may write a
    different user_id on the new row. This matches the deployed sync API policy.
    """
    owner = OwnedBy(subselect=False)
    return (
        CreatePolicy(
            "Users can view their own active files",
            "files",
            "select",
            using=AllOf(owner, IsNull("deleted_at")),
        ),
        CreatePolicy(
            "Users can insert their own files",
            "files",
            "insert",
            with_check=owner,
        ),
        CreatePolicy(
            "Users can soft-delete their own files",
            "files",
            "update",
            using=owner,
            with_check=AnyOf(IsNull("deleted_at"), After("deleted_at")),
        ),
        CreatePolicy(
            "Users can delete their own files permanently",
            "files",
            "delete",
            using=owner,
        ),
    )


INDEXES: dict[str, tuple[CreateIndex, ...]] = {"files": FILE_INDEXES}

POLICIES: dict[str, tuple[CreatePolicy, ...]] = {
    "books": owner_policies("books"),
    "book_configs": owner_policies("book_configs"),
    "book_notes": owner_policies("book_notes"),
    "files": file_policies(),
}


def definitions() -> Iterator[SchemaUnit]:
    """
    Yield every unit in dependency order: for each table, the table itself,
    then RLS enablement, its indexes, and its policies.
    """
    for table in TABLES:
        yield table
        yield EnableRowLevelSecurity(table.table, schema=table.schema)
        yield from INDEXES.get(table.table, ())
        yield from POLICIES[table.table]


def policies_for(table: str) -> tuple[CreatePolicy, ...]:
    """Policies defined on table, or an empty tuple for an unknown table."""
    return POLICIES.get(table, ())


def render_script(guarded: bool = False) -> str:
    """Whole catalog as one ';'-terminated script (used by --dry-run)."""
    return "\n\n".join(unit.render(guarded) + ";" for unit in definitions()) + "\n"
