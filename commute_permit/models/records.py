"""Generic table row used by the SQL record store."""

from typing import Any

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class StoreRecord(Base, TimestampMixin):
    """One record of a logical table, with its fields kept as a JSON document.

    The logical schema lives in the services (the same field names the Lark
    tables use), so a single physical table backs every logical one.
    """

    __tablename__ = "store_records"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False)
    # Insertion order within a table; list() returns rows in this order
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_store_records_table", "table_name", "seq"),
    )

    def __repr__(self) -> str:
        return f"<StoreRecord {self.table_name}/{self.id}>"
