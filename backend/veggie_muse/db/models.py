from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from veggie_muse.db.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryLedgerRow(Base):
    """One seen-items list per (client, category).

    ``items`` is whatever JSON was last written. It is normally an array of
    strings, but readers must not assume so.
    """

    __tablename__ = "history_ledgers"
    __table_args__ = (UniqueConstraint("client_id", "category", name="uq_history_ledgers_client_category"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    items: Mapped[Any] = mapped_column(JSON().with_variant(JSONB, "postgresql"), default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
