from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from veggie_muse.services.history_ledger import HistoryLedger
from veggie_muse.services.ledger_repository import ledger_repository
from veggie_muse.services.session_manager import ClientSession


@dataclass
class ClientContext:
    """Everything a request needs about its client, loaded before the handler runs."""

    session: ClientSession
    ledger: HistoryLedger
    db: AsyncSession

    @property
    def client_id(self) -> str:
        return self.session.client_id

    async def save_history(self) -> None:
        await ledger_repository.save(self.client_id, self.ledger, self.db)
