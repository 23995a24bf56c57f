import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from veggie_muse.pipeline.state import GeneratorKind, GeneratorSlot, GeneratorStage
from veggie_muse.services.captcha import CaptchaChallenge

logger = logging.getLogger(__name__)


def _verification_timeout() -> timedelta:
    return timedelta(minutes=int(os.getenv("VERIFICATION_TIMEOUT_MINUTES", "15")))


class ClientSession:
    """In-memory, per-browser state that does not outlive the process.

    Holds the human-verification flag and each generator's current result.
    The History Ledger is not kept here; it is persisted separately.
    """

    def __init__(self, client_id: str):
        self.client_id = client_id
        self.created_at = datetime.now()
        self.last_activity = datetime.now()
        self.verified = False
        self.pending_challenge: Optional[CaptchaChallenge] = None
        self.slots: dict[GeneratorKind, GeneratorSlot] = {kind: GeneratorSlot(kind=kind) for kind in GeneratorKind}

    def touch(self, now: Optional[datetime] = None):
        self.last_activity = now or datetime.now()

    def check_verification(self, now: Optional[datetime] = None) -> bool:
        """Whether the client is still verified. Must run before touch()."""
        now = now or datetime.now()
        if self.verified and now - self.last_activity > _verification_timeout():
            logger.info("Verification expired for client %s", self.client_id)
            self.verified = False
        return self.verified

    def set_verified(self):
        self.verified = True
        self.pending_challenge = None
        self.touch()

    def slot(self, kind: GeneratorKind) -> GeneratorSlot:
        return self.slots[GeneratorKind(kind)]

    @property
    def busy(self) -> bool:
        return any(slot.stage == GeneratorStage.SUBMITTING for slot in self.slots.values())

    def is_idle(self, now: Optional[datetime] = None) -> bool:
        """Idle past the verification timeout with nothing in flight."""
        now = now or datetime.now()
        return not self.busy and now - self.last_activity > _verification_timeout()


class SessionManager:
    """Client sessions keyed by X-Client-Id.

    Idle sessions are swept whenever a new client arrives, so the map is
    bounded by the clients active within the verification timeout.
    """

    def __init__(self):
        self._sessions: dict[str, ClientSession] = {}

    def get_or_create(self, client_id: str, now: Optional[datetime] = None) -> ClientSession:
        session = self._sessions.get(client_id)
        if session is None:
            self.evict_idle(now)
            session = ClientSession(client_id)
            self._sessions[client_id] = session
            logger.info("Created session for client %s", client_id)
        return session

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        idle = [client_id for client_id, session in self._sessions.items() if session.is_idle(now)]
        for client_id in idle:
            self.drop(client_id)
        if idle:
            logger.info("Evicted %d idle sessions", len(idle))
        return len(idle)

    def drop(self, client_id: str) -> bool:
        return self._sessions.pop(client_id, None) is not None


session_manager = SessionManager()
