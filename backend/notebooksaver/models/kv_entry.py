"""
NotebookSaver Backend — Key-Value Entry Model
===============================================

What:  ORM model for the `kv_entries` table backing SqlKeyValueStore.
Why:   The pending Drafts queue and the model catalog cache are each stored
       as one JSON document under a fixed key; a two-column table is all
       they need.

Keys in use:
    pendingDrafts               JSON list of {text, tag, timestamp}
    pendingDrafts.corrupt       a queue payload that failed to decode
    cachedGeminiModels          JSON list of model ids
    hasInitiallyFetchedModels   JSON true once a catalog fetch completed
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notebooksaver.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """One persisted value. Rows are replaced whole, never patched."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Store key, e.g. 'pendingDrafts'",
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Serialized value (JSON for every key the app writes)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        comment="When the value was last written (UTC)",
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key={self.key!r}, bytes={len(self.value or '')})>"
