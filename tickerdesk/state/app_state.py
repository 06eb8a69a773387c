"""Root application state, reducer and read-only selectors.

Routing consumes `select_has_active_sessions` and `select_active_session`
to decide whether a ticker view can be shown.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from tickerdesk.state.auth import AuthState, reduce_auth
from tickerdesk.state.intents import Intent
from tickerdesk.state.portfolio import Holding, PortfolioState, PortfolioTotals, reduce_portfolio
from tickerdesk.state.session_path import PathLike, SessionValue, get_path
from tickerdesk.state.sessions import Session, SessionsState, reduce_sessions
from tickerdesk.state.widgets import Widget, WidgetsState, list_widgets, reduce_widgets


@dataclass(frozen=True)
class AppState:
    """Shared state for the dashboard client."""

    auth: AuthState = field(default_factory=AuthState)
    sessions: SessionsState = field(default_factory=SessionsState)
    widgets: WidgetsState = field(default_factory=WidgetsState)
    portfolio: PortfolioState = field(default_factory=PortfolioState)


def reduce_state(state: AppState, intent: Intent) -> AppState:
    """Apply intent to every branch; unchanged branches keep their identity."""
    auth = reduce_auth(state.auth, intent)
    sessions = reduce_sessions(state.sessions, intent)
    widgets = reduce_widgets(state.widgets, intent)
    portfolio = reduce_portfolio(state.portfolio, intent)
    if (
        auth is state.auth
        and sessions is state.sessions
        and widgets is state.widgets
        and portfolio is state.portfolio
    ):
        return state
    return replace(state, auth=auth, sessions=sessions, widgets=widgets, portfolio=portfolio)


def changed_branches(before: AppState, after: AppState) -> set[str]:
    """Names of top-level branches whose object changed."""
    return {
        name
        for name in ("auth", "sessions", "widgets", "portfolio")
        if getattr(before, name) is not getattr(after, name)
    }


# --- Selectors ---


def select_sessions(state: AppState) -> tuple[Session, ...]:
    return state.sessions.sessions


def select_active_session_id(state: AppState) -> str | None:
    return state.sessions.active_session_id


def select_active_session(state: AppState) -> Session | None:
    return state.sessions.get(state.sessions.active_session_id)


def select_has_active_sessions(state: AppState) -> bool:
    return len(state.sessions.sessions) > 0


def select_has_placeholder(state: AppState) -> bool:
    return state.sessions.has_placeholder


def select_is_logged_in(state: AppState) -> bool:
    return state.auth.is_logged_in


def select_session_data(state: AppState, session_id: str, path: PathLike | None = None) -> SessionValue | None:
    """Session data at `path` (whole tree when no path), None if absent."""
    session = state.sessions.get(session_id)
    if session is None:
        return None
    if path is None:
        return session.session_data
    return get_path(session.session_data, path)


def select_active_session_data(state: AppState, path: PathLike | None = None) -> SessionValue | None:
    active_id = state.sessions.active_session_id
    if active_id is None:
        return None
    return select_session_data(state, active_id, path)


def select_widgets_by_screen(state: AppState, screen: str) -> tuple[Widget, ...]:
    return list_widgets(state.widgets, screen)


def select_holdings(state: AppState) -> tuple[Holding, ...]:
    return state.portfolio.holdings


def select_portfolio_totals(state: AppState) -> PortfolioTotals:
    return state.portfolio.totals
