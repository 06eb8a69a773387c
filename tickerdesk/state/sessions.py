"""Ticker session registry: state model and reducer.

Each session is an isolated tab bound to one ticker symbol or to a sentinel
mode (`PLACEHOLDER` for an empty new tab, `PRIVATE_DATA` for uploaded data).
`reduce_sessions` is total: unknown ids and malformed payloads leave the
state unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from instrukt_ai_logging import get_logger

from tickerdesk.constants import PLACEHOLDER_TICKER, SENTINEL_TICKERS
from tickerdesk.state.intents import Intent, IntentPayload, IntentType
from tickerdesk.state.session_path import InvalidPathError, PathLike, SessionValue, as_path, set_path

logger = get_logger(__name__)


def default_session_data() -> dict[str, SessionValue]:
    """Fresh per-feature namespaces for a new session."""
    return {
        "chat": {"messages": [], "isChatOpen": False, "showChatTips": True},
        "filingView": {"scrollPosition": 0},
        "news": {"articles": [], "activeFilter": "Latest", "isLoading": False, "lastFetched": None},
        "charts": {"selectedTimeframe": "1Y", "indicators": []},
        "equity": {"selectedTab": "overview"},
    }


@dataclass(frozen=True)
class Session:
    """One ticker tab."""

    id: str
    ticker: str
    created_at: datetime
    is_active: bool = False
    session_data: Mapping[str, SessionValue] = field(default_factory=default_session_data)

    @property
    def is_placeholder(self) -> bool:
        return self.ticker == PLACEHOLDER_TICKER


@dataclass(frozen=True)
class SessionsState:
    """All open ticker sessions plus the active pointer."""

    sessions: tuple[Session, ...] = ()
    active_session_id: str | None = None
    has_placeholder: bool = False

    def get(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return None
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def __contains__(self, session_id: object) -> bool:
        return any(session.id == session_id for session in self.sessions)


def normalize_ticker(ticker: str) -> str:
    """Uppercase a symbol; sentinel modes pass through unchanged."""
    cleaned = ticker.strip()
    if cleaned in SENTINEL_TICKERS:
        return cleaned
    return cleaned.upper()


def new_session_stamp(now: datetime | None = None) -> tuple[str, datetime]:
    """Return a time-derived session id and creation timestamp."""
    return str(time.time_ns()), now or datetime.now(UTC)


def _unique_id(state: SessionsState, candidate: str) -> str:
    if candidate not in state:
        return candidate
    suffix = 1
    while f"{candidate}-{suffix}" in state:
        suffix += 1
    return f"{candidate}-{suffix}"


def _with_active(sessions: tuple[Session, ...], active_id: str | None) -> tuple[Session, ...]:
    result: list[Session] = []
    for session in sessions:
        should_be_active = session.id == active_id
        if session.is_active != should_be_active:
            session = replace(session, is_active=should_be_active)
        result.append(session)
    return tuple(result)


def _without_placeholder(sessions: tuple[Session, ...]) -> tuple[Session, ...]:
    return tuple(session for session in sessions if not session.is_placeholder)


def _append_active(state: SessionsState, p: IntentPayload, ticker: str) -> SessionsState:
    session_id = p.get("session_id")
    created_at = p.get("created_at")
    if not session_id or not isinstance(created_at, datetime):
        logger.warning("Session intent missing id/created_at stamp, ignoring")
        return state
    remaining = _without_placeholder(state.sessions)
    session_id = _unique_id(SessionsState(sessions=remaining), session_id)
    new_session = Session(id=session_id, ticker=ticker, created_at=created_at, is_active=True)
    sessions = (*_with_active(remaining, None), new_session)
    logger.debug("Session %s opened for %s", session_id[:8], ticker)
    return SessionsState(
        sessions=sessions,
        active_session_id=session_id,
        has_placeholder=ticker == PLACEHOLDER_TICKER,
    )


def _close(state: SessionsState, session_id: str) -> SessionsState:
    closing = state.get(session_id)
    if closing is None:
        logger.debug("close_session: unknown session %s", session_id[:8])
        return state

    survivors = tuple(session for session in state.sessions if session.id != session_id)
    has_placeholder = state.has_placeholder and not closing.is_placeholder

    if not survivors:
        return SessionsState(sessions=(), active_session_id=None, has_placeholder=False)

    if state.active_session_id != session_id:
        return SessionsState(
            sessions=survivors,
            active_session_id=state.active_session_id,
            has_placeholder=has_placeholder,
        )

    # Newest survivor wins; equal timestamps resolve to the later tab.
    _, newest = max(enumerate(survivors), key=lambda item: (item[1].created_at, item[0]))
    return SessionsState(
        sessions=_with_active(survivors, newest.id),
        active_session_id=newest.id,
        has_placeholder=has_placeholder,
    )


def _write_data(state: SessionsState, session_id: str | None, p: IntentPayload) -> SessionsState:
    target = state.get(session_id)
    raw_path = p.get("path")
    if target is None or raw_path is None or "value" not in p:
        return state
    try:
        path = as_path(raw_path)
    except InvalidPathError as e:
        logger.warning("Ignoring session data write for %s: %s", target.id[:8], e)
        return state
    updated = replace(target, session_data=set_path(target.session_data, path, p["value"]))
    return replace(state, sessions=tuple(updated if s.id == target.id else s for s in state.sessions))


def reduce_sessions(state: SessionsState, intent: Intent) -> SessionsState:
    """Apply intent to the session registry and return the new state."""
    t = intent.type
    p = intent.payload

    if t is IntentType.CREATE_SESSION:
        ticker = p.get("ticker")
        if not isinstance(ticker, str) or not ticker.strip():
            logger.warning("create_session without ticker, ignoring")
            return state
        return _append_active(state, p, normalize_ticker(ticker))

    if t is IntentType.CREATE_PLACEHOLDER_SESSION:
        return _append_active(state, p, PLACEHOLDER_TICKER)

    if t is IntentType.SET_ACTIVE_SESSION:
        session_id = p.get("session_id")
        if session_id not in state:
            logger.warning("set_active_session: unknown session %s, clearing active pointer", session_id)
            return replace(state, sessions=_with_active(state.sessions, None), active_session_id=None)
        return replace(state, sessions=_with_active(state.sessions, session_id), active_session_id=session_id)

    if t is IntentType.CLOSE_SESSION:
        session_id = p.get("session_id")
        if not session_id:
            return state
        return _close(state, session_id)

    if t is IntentType.SET_SESSION_TICKER:
        target = state.get(p.get("session_id"))
        ticker = p.get("ticker")
        if target is None or not isinstance(ticker, str) or not ticker.strip():
            return state
        ticker = normalize_ticker(ticker)
        if ticker == PLACEHOLDER_TICKER and state.has_placeholder and not target.is_placeholder:
            logger.warning("Session %s cannot become a second placeholder", target.id[:8])
            return state
        sessions = tuple(replace(s, ticker=ticker) if s.id == target.id else s for s in state.sessions)
        return replace(
            state,
            sessions=sessions,
            has_placeholder=any(s.is_placeholder for s in sessions),
        )

    if t is IntentType.UPDATE_SESSION_DATA:
        return _write_data(state, p.get("session_id"), p)

    if t is IntentType.UPDATE_ACTIVE_SESSION_DATA:
        return _write_data(state, state.active_session_id, p)

    return state


# --- Operation helpers ---


def create_session(state: SessionsState, ticker: str, *, now: datetime | None = None) -> SessionsState:
    session_id, created_at = new_session_stamp(now)
    return reduce_sessions(
        state,
        Intent(IntentType.CREATE_SESSION, {"ticker": ticker, "session_id": session_id, "created_at": created_at}),
    )


def create_placeholder_session(state: SessionsState, *, now: datetime | None = None) -> SessionsState:
    session_id, created_at = new_session_stamp(now)
    return reduce_sessions(
        state,
        Intent(IntentType.CREATE_PLACEHOLDER_SESSION, {"session_id": session_id, "created_at": created_at}),
    )


def set_active_session(state: SessionsState, session_id: str) -> SessionsState:
    return reduce_sessions(state, Intent(IntentType.SET_ACTIVE_SESSION, {"session_id": session_id}))


def close_session(state: SessionsState, session_id: str) -> SessionsState:
    return reduce_sessions(state, Intent(IntentType.CLOSE_SESSION, {"session_id": session_id}))


def update_session_data(state: SessionsState, session_id: str, path: PathLike, value: SessionValue) -> SessionsState:
    """Write `value` at `path` in one session's data (path validated here)."""
    return reduce_sessions(
        state,
        Intent(IntentType.UPDATE_SESSION_DATA, {"session_id": session_id, "path": as_path(path), "value": value}),
    )


def update_active_session_data(state: SessionsState, path: PathLike, value: SessionValue) -> SessionsState:
    return reduce_sessions(
        state,
        Intent(IntentType.UPDATE_ACTIVE_SESSION_DATA, {"path": as_path(path), "value": value}),
    )
