"""
Duet — Stored document model.

One row per persistent-store key.  The value column holds the whole JSON
document; writes replace it as a unit.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from duet.database import Base


class StoredDocument(Base):
    __tablename__ = "documents"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[dict] = mapped_column(
        JSON, nullable=False, comment="Versioned JSON document"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StoredDocument {self.key!r}>"
