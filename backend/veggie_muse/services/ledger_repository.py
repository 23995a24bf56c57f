from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from veggie_muse.db.models import HistoryLedgerRow, utc_now
from veggie_muse.services.history_ledger import HistoryLedger

logger = logging.getLogger(__name__)


class LedgerRepository:
    """DB-backed persistence for HistoryLedger, one row per (client, category).

    Returns HistoryLedger objects so the pipelines never touch the ORM.
    """

    async def load(self, client_id: str, db: AsyncSession) -> HistoryLedger:
        result = await db.execute(select(HistoryLedgerRow).where(HistoryLedgerRow.client_id == client_id))
        rows = result.scalars().all()
        return HistoryLedger.from_storage({row.category: row.items for row in rows})

    async def save(self, client_id: str, ledger: HistoryLedger, db: AsyncSession) -> None:
        """Write back only the categories that changed since load."""
        dirty = ledger.dirty
        if not dirty:
            return
        result = await db.execute(
            select(HistoryLedgerRow).where(
                HistoryLedgerRow.client_id == client_id,
                HistoryLedgerRow.category.in_([c.value for c in dirty]),
            )
        )
        existing = {row.category: row for row in result.scalars().all()}
        for category in dirty:
            items = ledger.list(category)
            row = existing.get(category.value)
            if row is None:
                db.add(HistoryLedgerRow(client_id=client_id, category=category.value, items=items))
            else:
                row.items = items
                row.updated_at = utc_now()
        await db.commit()
        ledger.mark_clean()
        logger.info("Saved ledger categories %s for client %s", sorted(c.value for c in dirty), client_id)


ledger_repository = LedgerRepository()
