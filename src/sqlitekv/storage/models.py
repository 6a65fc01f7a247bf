"""Table definition and row models for stored entries.

The table name is chosen per store, so the table is built with SQLAlchemy
Core against the store's own MetaData instead of a shared declarative base.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Column, Integer, MetaData, Table, Text, text

from sqlitekv.config import JournalMode


def build_entry_table(table_name: str, metadata: Optional[MetaData] = None) -> Table:
    """Define the entry table.

    Columns:
        key: Entry key (primary key)
        value: JSON-encoded value
        expiry: Expiry in ms since the epoch, NULL for never
        one_time: 1 if the entry is deleted after its first read

    Args:
        table_name: Name of the table
        metadata: MetaData to register the table with (new one if omitted)

    Returns:
        The Table object
    """
    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("key", Text, primary_key=True),
        Column("value", Text),
        Column("expiry", Integer, nullable=True),
        Column("one_time", Integer, nullable=False, default=0, server_default=text("0")),
    )


@dataclass(frozen=True)
class StoredEntry:
    """A raw row as read from the entry table.

    Attributes:
        key: Entry key
        value: JSON text of the value
        expiry: Expiry in ms since the epoch, None for never
        one_time: Whether the entry is consumed by its first read
    """

    key: str
    value: str
    expiry: Optional[int] = None
    one_time: bool = False


class StoreInfo(BaseModel):
    """Summary of a store's database.

    Attributes:
        journal_mode: Journal mode currently in effect
        path: Resolved database path (":memory:" for memory mode)
        filename: Configured filename
        table_name: Entry table name
        size_bytes: Size of the database file (0 for memory mode)
        key_count: Number of live entries
    """

    journal_mode: JournalMode
    path: str
    filename: str
    table_name: str
    size_bytes: int = Field(ge=0)
    key_count: int = Field(ge=0)
