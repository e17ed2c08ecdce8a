"""SimuliveEngine: process-level entry point.

Owns the single ServerClock (``ClockSyncService``) shared by every consumer
and the document store handle, and keeps at most one ``LiveSession`` open.
Opening another session tears the current one down first; a generation
counter makes an ``open()`` that was overtaken by a later one fail instead
of installing a stale session.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from simulive._types import SessionPhase
from simulive.clock.authority import DocumentStoreTimestampAuthority
from simulive.clock.server_clock import ClockSyncService
from simulive.config.settings import get_settings
from simulive.exceptions import SessionError, SessionNotFoundError
from simulive.feed.live_feed import LiveFeed
from simulive.feed.payloads import CHAT_FEED
from simulive.feed.source import FeedSource
from simulive.logging import get_logger
from simulive.session.live_session import LiveSession
from simulive.session.phase import resolve_facts
from simulive.session.source import SessionRecordSource

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from simulive._types import FeedRecord, SessionTimingFacts
    from simulive.clock.authority import TimestampAuthority
    from simulive.config.settings import SimuliveSettings
    from simulive.exceptions import FeedFetchError
    from simulive.feed.payloads import FeedLayout
    from simulive.playback.media import MediaElement
    from simulive.store.interface import DocumentStore

logger = get_logger("engine")


class SimuliveEngine:
    """Synchronization engine for simulated-live sessions.

    Args:
        store: Backing document store.
        settings: Engine settings. Default: ``get_settings()``.
        authority: Trusted timestamp source. Default: marker documents in
            ``store``.
        local_clock: Local wall clock in epoch ms (injectable for tests).
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: SimuliveSettings | None = None,
        *,
        authority: TimestampAuthority | None = None,
        local_clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = ClockSyncService.from_settings(
            authority or DocumentStoreTimestampAuthority(store),
            self._settings.clock,
            local_clock=local_clock,
        )
        self._records = SessionRecordSource(store)
        self._session: LiveSession[Any] | None = None
        self._generation = 0

    @property
    def clock(self) -> ClockSyncService:
        return self._clock

    @property
    def settings(self) -> SimuliveSettings:
        return self._settings

    @property
    def session(self) -> LiveSession[Any] | None:
        """The open session, if any."""
        return self._session

    async def open(
        self,
        session_id: str,
        streams: Mapping[str, MediaElement] | None = None,
        *,
        feed_layout: FeedLayout[Any] = CHAT_FEED,
        on_phase_change: Callable[[SessionPhase | None, SessionPhase], None] | None = None,
        on_feed_update: Callable[[tuple[FeedRecord[Any], ...]], None] | None = None,
        on_feed_error: Callable[[FeedFetchError], None] | None = None,
    ) -> LiveSession[Any]:
        """Open ``session_id``, closing the current session first.

        Args:
            session_id: Session to view.
            streams: Media streams kept on the shared timeline while LIVE.
            feed_layout: Feed shown alongside the session (chat by default,
                or polls and viewer presence).
            on_phase_change: Called with (previous, current) phases.
            on_feed_update: Called with the merged feed view on change.
            on_feed_error: Called with feed subscription failures.

        Raises:
            SessionError: If a later ``open()`` overtook this one.
        """
        current = self._session
        if current is not None and current.session_id == session_id and current.running:
            return current

        self._generation += 1
        generation = self._generation
        if current is not None:
            self._session = None
            await current.stop()
        if generation != self._generation:
            msg = f"Opening session '{session_id}' was superseded"
            raise SessionError(msg)

        feed_settings = self._settings.feed
        feed: LiveFeed[Any] = LiveFeed(
            FeedSource.from_layout(
                self._store,
                session_id,
                feed_layout,
                window_size=feed_settings.window_size,
                page_size=feed_settings.page_size,
            ),
            retry=self._settings.retry,
            on_update=on_feed_update,
            on_error=on_feed_error,
        )
        session: LiveSession[Any] = LiveSession(
            session_id,
            clock=self._clock,
            records=self._records,
            feed=feed,
            streams=streams or {},
            settings=self._settings,
            on_phase_change=on_phase_change,
        )
        self._session = session
        session.start()
        logger.info("engine_session_opened", session_id=session_id, generation=generation)
        return session

    async def close(self) -> None:
        """Close the open session and stop the clock."""
        self._generation += 1
        session, self._session = self._session, None
        if session is not None:
            await session.stop()
        await self._clock.close()
        logger.info("engine_closed")

    async def session_facts(self, session_id: str) -> SessionTimingFacts:
        """Read a session's timing facts.

        Raises:
            SessionNotFoundError: If the session record does not exist.
        """
        facts = await self._records.get(session_id)
        if facts is None:
            raise SessionNotFoundError(session_id)
        return facts

    async def resolve(self, session_id: str) -> SessionPhase:
        """One-shot phase of a session; a missing record is ENDED."""
        facts = await self._records.get(session_id)
        now = self._clock.now() if self._clock.is_synced else datetime.now(UTC)
        return resolve_facts(facts, now, policy=self._settings.phase.phase_policy)
