"""
Session Store
=============

Maps opaque session ids to the identity of a signed-in browser.

Sessions are only ever created for an authenticated identity: an anonymous
browser has no session at all. The store owns expiry; a record past its
``expires_at`` is treated as absent. It is removed when it is read and
whenever a new session is created.
"""

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from pydantic import BaseModel, Field

from portal.app.models import NormalizedIdentity

logger = logging.getLogger("portal.auth.store")


# =============================================================================
# Exceptions
# =============================================================================

class SessionStoreError(Exception):
    """Infrastructure failure while reading or writing sessions."""
    pass


# =============================================================================
# Records
# =============================================================================

class SessionRecord(BaseModel):
    """One persisted session."""

    session_id: str = Field(..., description="Opaque session identifier")
    identity: NormalizedIdentity = Field(..., description="Identity held by the session")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    expires_at: datetime = Field(..., description="Expiry time (UTC)")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


def new_session_id() -> str:
    """Generate an unguessable session id."""
    return secrets.token_urlsafe(32)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Store Contract
# =============================================================================

class SessionStore(ABC):
    """create / read / destroy contract consumed by the session manager."""

    @abstractmethod
    async def create(self, identity: NormalizedIdentity) -> SessionRecord:
        """
        Persist a new session holding ``identity``.

        Raises:
            SessionStoreError: If the session cannot be written
        """

    @abstractmethod
    async def read(self, session_id: str) -> Optional[SessionRecord]:
        """
        Resolve a session id.

        Returns:
            The live record, or None if unknown or expired

        Raises:
            SessionStoreError: If the store cannot be reached
        """

    @abstractmethod
    async def destroy(self, session_id: str) -> bool:
        """
        Remove a session. Destroying an unknown id is not an error.

        Returns:
            True if a session was removed
        """


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemorySessionStore(SessionStore):
    """
    In-memory TTL session store.

    Mutations are serialized with an asyncio.Lock that is only held for the
    dictionary update, never across other I/O. Suitable for a single process;
    sessions are lost on restart.
    """

    def __init__(
        self,
        ttl_seconds: int = 86400,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            ttl_seconds: Lifetime of a session from creation
            clock: Returns the current UTC time (override in tests)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or _utcnow

    async def create(self, identity: NormalizedIdentity) -> SessionRecord:
        now = self._clock()
        record = SessionRecord(
            session_id=new_session_id(),
            identity=identity,
            created_at=now,
            expires_at=now + self._ttl,
        )
        async with self._lock:
            purged = self._drop_expired(now)
            self._sessions[record.session_id] = record

        if purged:
            logger.debug("Removed expired sessions", extra={"count": purged})
        logger.debug(
            "Created session",
            extra={"provider": identity.provider.value, "expires_at": record.expires_at.isoformat()},
        )
        return record

    async def read(self, session_id: str) -> Optional[SessionRecord]:
        if not session_id:
            return None

        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return None
            if record.is_expired(self._clock()):
                del self._sessions[session_id]
                logger.debug("Removed expired session")
                return None
            return record

    async def destroy(self, session_id: str) -> bool:
        if not session_id:
            return False

        async with self._lock:
            removed = self._sessions.pop(session_id, None) is not None

        if removed:
            logger.debug("Destroyed session")
        return removed

    async def purge_expired(self) -> int:
        """
        Drop all expired sessions.

        Returns:
            Number of sessions removed
        """
        async with self._lock:
            purged = self._drop_expired(self._clock())

        if purged:
            logger.info("Purged expired sessions", extra={"count": purged})
        return purged

    def _drop_expired(self, now: datetime) -> int:
        # Caller holds self._lock.
        expired = [sid for sid, rec in self._sessions.items() if rec.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
