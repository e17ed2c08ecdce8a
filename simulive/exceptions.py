"""Typed exceptions for Simulive.

Hierarchy:
    SimuliveError (base)
    +-- DocumentStoreError
    +-- ClockError
    |   +-- TimestampAuthorityError
    |   +-- TransientSyncFailure (cached offset still usable)
    |   +-- ClockUnavailableError (no usable offset, fresh or cached)
    +-- PlaybackError
    |   +-- PlaybackBlockedError
    +-- FeedError
    |   +-- FeedFetchError
    +-- SessionError
        +-- SessionNotFoundError
"""

from __future__ import annotations

from simulive._constants import RETRYABLE_STORE_CODES


class SimuliveError(Exception):
    """Base for all Simulive exceptions."""


# --- Document store ---


class DocumentStoreError(SimuliveError):
    """Operation against the backing document store failed.

    ``code`` follows the store's status vocabulary (``unavailable``,
    ``deadline-exceeded``, ``permission-denied``, ``not-found``, ...).
    """

    def __init__(self, code: str, detail: str = "") -> None:
        self.code = code
        self.detail = detail
        msg = f"Document store error ({code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @property
    def retryable(self) -> bool:
        """True for transient codes worth retrying with backoff."""
        return self.code in RETRYABLE_STORE_CODES


# --- Clock ---


class ClockError(SimuliveError):
    """Server clock synchronization error."""


class TimestampAuthorityError(ClockError):
    """The trusted timestamp round trip failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Server timestamp round trip failed: {reason}")


class TransientSyncFailure(ClockError):
    """Resync failed but a cached offset inside the fallback horizon was used."""

    def __init__(self, reason: str, cached_age_ms: float) -> None:
        self.reason = reason
        self.cached_age_ms = cached_age_ms
        super().__init__(
            f"Clock resync failed ({reason}); using cached offset aged {cached_age_ms:.0f}ms"
        )


class ClockUnavailableError(ClockError):
    """No usable clock offset exists (neither fresh nor cached)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Server clock unavailable: {reason}")


# --- Playback ---


class PlaybackError(SimuliveError):
    """Media element control error."""


class PlaybackBlockedError(PlaybackError):
    """Resuming a stream was rejected (typically autoplay policy)."""

    def __init__(self, stream_id: str, reason: str) -> None:
        self.stream_id = stream_id
        self.reason = reason
        super().__init__(f"Playback of stream '{stream_id}' blocked: {reason}")


# --- Feed ---


class FeedError(SimuliveError):
    """Live feed error."""


class FeedFetchError(FeedError):
    """Feed subscription or history pagination failed.

    ``source`` is ``"subscription"`` or ``"history"``.
    """

    def __init__(self, session_id: str, source: str, reason: str) -> None:
        self.session_id = session_id
        self.source = source
        self.reason = reason
        super().__init__(f"Feed {source} for session '{session_id}' failed: {reason}")


# --- Session ---


class SessionError(SimuliveError):
    """Session lifecycle error."""


class SessionNotFoundError(SessionError):
    """Session record not found in the store."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")

