"""Pairing sessions: code-addressable groups of participants with inactivity expiry.

Session records live at ``sessions/{id}`` with a secondary ``sessionsByCode/{code}``
index. Expiry is enforced lazily: any read that observes an expired session
deletes it. An optional sweeper deletes expired sessions nobody reads.

Join and leave are read-modify-write on ``participantIDs`` without a store
transaction; two concurrent joins can lose one append.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from pairing.codes import CODE_LENGTH, generate_code, is_valid_code, normalize_code
from shared.clock import utc_now
from shared.dal.models import Session
from shared.errors import CodeGenerationExhaustedError, SessionExpiredError, SessionNotFoundError
from shared.store import paths

if TYPE_CHECKING:
    from collections.abc import Callable

    from shared.clock import Clock
    from shared.settings import SyncSettings
    from shared.store.protocol import RemoteStore

DEFAULT_SESSION_TTL = timedelta(hours=24)
MAX_CODE_ATTEMPTS = 10

logger = structlog.get_logger()


class SessionManager:
    """Create, join, leave and expire pairing sessions against the RemoteStore.

    Sessions are not cached: every call reads the store.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        clock: Clock = utc_now,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        code_length: int = CODE_LENGTH,
        max_code_attempts: int = MAX_CODE_ATTEMPTS,
        code_generator: Callable[[], str] | None = None,
        sweep_interval_seconds: float = 0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ttl = ttl
        self._code_length = code_length
        self._max_code_attempts = max_code_attempts
        self._code_generator = code_generator or (lambda: generate_code(code_length))
        self._sweep_interval_seconds = sweep_interval_seconds
        self._sweeper_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, store: RemoteStore, settings: SyncSettings, clock: Clock = utc_now) -> SessionManager:
        return cls(
            store,
            clock=clock,
            ttl=settings.session_ttl,
            code_length=settings.session_code_length,
            max_code_attempts=settings.session_code_attempts,
            sweep_interval_seconds=settings.session_sweep_seconds,
        )

    def is_expired(self, session: Session) -> bool:
        return self._clock() - session.last_activity_at > self._ttl

    async def create_session(self, created_by_id: str, game_id: str | None = None) -> Session:
        """Create an empty session under a fresh join code.

        Writes the record first and the code index second; the pair is not atomic.
        """
        code = await self._claim_code()
        session_id = await self._store.push(paths.SESSIONS)
        now = self._clock()
        session = Session(
            id=session_id,
            code=code,
            participant_ids=[],
            created_at=now,
            created_by_id=created_by_id,
            last_activity_at=now,
            game_id=game_id,
        )
        await self._store.set(paths.join(paths.SESSIONS, session_id), session.to_document())
        await self._store.set(paths.join(paths.SESSIONS_BY_CODE, code), session_id)
        logger.info("session created", session_id=session_id, code=code, created_by_id=created_by_id)
        return session

    async def get_session(self, session_id: str) -> Session | None:
        session = await self._load(session_id)
        if session is None:
            return None
        if self.is_expired(session):
            await self._expire(session)
            return None
        return session

    async def get_session_by_code(self, code: str) -> Session | None:
        """Resolve a join code to a live session, deleting it if it has expired."""
        code = normalize_code(code)
        if not is_valid_code(code, self._code_length):
            return None
        session_id = await self._store.get(paths.join(paths.SESSIONS_BY_CODE, code))
        if not isinstance(session_id, str):
            return None
        session = await self._load(session_id)
        if session is None:
            logger.info("removing dangling session code", code=code, session_id=session_id)
            await self._store.remove(paths.join(paths.SESSIONS_BY_CODE, code))
            return None
        if self.is_expired(session):
            await self._expire(session)
            return None
        return session

    async def join_session(self, session_id: str, player_id: str) -> Session:
        """Add a participant (idempotent) and bump last activity.

        Raises SessionNotFoundError or SessionExpiredError; the expired session is deleted.
        """
        session = await self._load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if self.is_expired(session):
            await self._expire(session)
            raise SessionExpiredError(session_id)

        participants = session.participant_ids
        if player_id not in participants:
            participants = [*participants, player_id]
        updated = await self._write_participants(session, participants)
        logger.info("player joined session", session_id=session_id, player_id=player_id)
        return updated

    async def leave_session(self, session_id: str, player_id: str) -> Session | None:
        """Remove a participant; the last one out deletes the session.

        Returns the updated session, or None when it no longer exists. Leaving a
        missing or expired session is a no-op.
        """
        session = await self._load(session_id)
        if session is None:
            return None
        if self.is_expired(session):
            await self._expire(session)
            return None

        remaining = [pid for pid in session.participant_ids if pid != player_id]
        if not remaining:
            await self._delete(session)
            logger.info("session closed by last participant", session_id=session_id, player_id=player_id)
            return None
        if len(remaining) == len(session.participant_ids):
            return session

        updated = await self._write_participants(session, remaining)
        logger.info("player left session", session_id=session_id, player_id=player_id)
        return updated

    async def get_active_sessions(self) -> list[Session]:
        """All non-expired sessions, most recently active first. Never deletes."""
        sessions = [session for session in await self._load_all() if not self.is_expired(session)]
        return sorted(sessions, key=lambda session: session.last_activity_at, reverse=True)

    async def get_sessions_for_player(self, player_id: str) -> list[Session]:
        return [session for session in await self.get_active_sessions() if player_id in session.participant_ids]

    async def delete_session(self, session_id: str) -> None:
        session = await self._load(session_id)
        if session is None:
            return
        await self._delete(session)
        logger.info("session deleted", session_id=session_id)

    async def sweep_expired(self) -> int:
        """Delete every expired session. Return the number removed."""
        expired = [session for session in await self._load_all() if self.is_expired(session)]
        for session in expired:
            await self._delete(session)
        if expired:
            logger.info("swept expired sessions", count=len(expired))
        return len(expired)

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep. Does nothing when the interval is 0."""
        if self._sweep_interval_seconds <= 0:
            return
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweeper_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweeper_loop(self) -> None:
        """Periodically delete sessions nobody has read since they expired."""
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                await self.sweep_expired()
            except Exception:
                logger.exception("session sweep failed")

    async def _claim_code(self) -> str:
        for attempt in range(1, self._max_code_attempts + 1):
            code = self._code_generator()
            if await self._code_available(code):
                return code
            logger.debug("session code collision", code=code, attempt=attempt)
        logger.warning("session code generation exhausted", attempts=self._max_code_attempts)
        raise CodeGenerationExhaustedError(self._max_code_attempts)

    async def _code_available(self, code: str) -> bool:
        """A code is taken only while its index entry points at a live session."""
        session_id = await self._store.get(paths.join(paths.SESSIONS_BY_CODE, code))
        if not isinstance(session_id, str):
            return True
        session = await self._load(session_id)
        if session is None:
            await self._store.remove(paths.join(paths.SESSIONS_BY_CODE, code))
            return True
        if self.is_expired(session):
            await self._expire(session)
            return True
        return False

    async def _write_participants(self, session: Session, participants: list[str]) -> Session:
        updated = session.model_copy(update={"participant_ids": participants, "last_activity_at": self._clock()})
        document = updated.to_document()
        await self._store.update(
            paths.join(paths.SESSIONS, session.id),
            {"participantIDs": document["participantIDs"], "lastActivityAt": document["lastActivityAt"]},
        )
        return updated

    async def _expire(self, session: Session) -> None:
        await self._delete(session)
        logger.info("expired session deleted", session_id=session.id, code=session.code)

    async def _delete(self, session: Session) -> None:
        """Remove the record, then the code index if it still points at this session."""
        await self._store.remove(paths.join(paths.SESSIONS, session.id))
        index_path = paths.join(paths.SESSIONS_BY_CODE, session.code)
        if await self._store.get(index_path) == session.id:
            await self._store.remove(index_path)

    async def _load(self, session_id: str) -> Session | None:
        if not paths.is_segment(session_id):
            return None
        return self._parse(session_id, await self._store.get(paths.join(paths.SESSIONS, session_id)))

    async def _load_all(self) -> list[Session]:
        records = await self._store.get(paths.SESSIONS) or {}
        sessions = (self._parse(session_id, data) for session_id, data in records.items())
        return [session for session in sessions if session is not None]

    def _parse(self, session_id: str, data: object) -> Session | None:
        if not isinstance(data, dict):
            return None
        try:
            return Session.from_document(session_id, data)
        except ValidationError:
            logger.warning("skipping malformed session", session_id=session_id, exc_info=True)
            return None
