"""Persistence helpers for dashboard state.

Only whitelisted branches (auth, sessions, widgets, portfolio) are written.
Snapshots are plain JSON; restoring re-establishes the registry invariants
(single placeholder, valid active pointer, valid holdings) instead of
trusting the file.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType

from instrukt_ai_logging import get_logger

from tickerdesk.constants import PERSISTED_BRANCHES, PLACEHOLDER_TICKER
from tickerdesk.paths import STATE_PATH
from tickerdesk.state.app_state import AppState
from tickerdesk.state.auth import AuthState
from tickerdesk.state.intents import Intent, IntentType
from tickerdesk.state.portfolio import DEFAULT_SECTOR, Holding, PortfolioState, reduce_portfolio
from tickerdesk.state.sessions import Session, SessionsState
from tickerdesk.state.widgets import Widget, WidgetLayout, WidgetSize, WidgetsState

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1


# --- Encoding ---


def _encode_session(session: Session) -> dict[str, object]:
    return {
        "id": session.id,
        "ticker": session.ticker,
        "created_at": session.created_at.isoformat(),
        "is_active": session.is_active,
        "session_data": session.session_data,
    }


def _encode_widget(widget: Widget) -> dict[str, object]:
    layout = widget.layout
    return {
        "id": widget.id,
        "screen": widget.screen,
        "size": widget.size.value,
        "data": widget.data,
        "is_resizable": widget.is_resizable,
        "content": widget.content,
        "stock": widget.stock,
        "layout": {"x": layout.x, "y": layout.y, "w": layout.w, "h": layout.h} if layout else None,
    }


def _encode_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _encode_holding(holding: Holding) -> dict[str, object]:
    return {
        "id": holding.id,
        "symbol": holding.symbol,
        "name": holding.name,
        "shares": holding.shares,
        "avg_cost": holding.avg_cost,
        "current_price": holding.current_price,
        "sector": holding.sector,
        "date_added": _encode_time(holding.date_added),
        "daily_change": holding.daily_change,
        "daily_change_percent": holding.daily_change_percent,
    }


def encode_state(state: AppState, whitelist: Iterable[str] = PERSISTED_BRANCHES) -> dict[str, object]:
    """Build the JSON-serializable snapshot of whitelisted branches."""
    branches = set(whitelist)
    snapshot: dict[str, object] = {"version": SNAPSHOT_VERSION}
    if "auth" in branches:
        snapshot["auth"] = {"is_logged_in": state.auth.is_logged_in}
    if "sessions" in branches:
        snapshot["sessions"] = {
            "sessions": [_encode_session(s) for s in state.sessions.sessions],
            "active_session_id": state.sessions.active_session_id,
        }
    if "widgets" in branches:
        snapshot["widgets"] = {
            screen: [_encode_widget(w) for w in widgets] for screen, widgets in state.widgets.by_screen.items()
        }
    if "portfolio" in branches:
        snapshot["portfolio"] = {
            "holdings": [_encode_holding(h) for h in state.portfolio.holdings],
            "last_updated": _encode_time(state.portfolio.last_updated),
        }
    return snapshot


# --- Decoding ---


def _decode_session(item: object) -> Session | None:
    if not isinstance(item, dict):
        return None
    session_id = item.get("id")
    ticker = item.get("ticker")
    created_raw = item.get("created_at")
    session_data = item.get("session_data")
    if not isinstance(session_id, str) or not isinstance(ticker, str) or not isinstance(created_raw, str):
        return None
    try:
        created_at = datetime.fromisoformat(created_raw)
    except ValueError:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return Session(
        id=session_id,
        ticker=ticker,
        created_at=created_at,
        session_data=session_data if isinstance(session_data, dict) else {},
    )


def decode_sessions(raw: object) -> SessionsState:
    """Rebuild the session registry, repairing any broken invariant."""
    if not isinstance(raw, dict):
        return SessionsState()
    items = raw.get("sessions")
    decoded: list[Session] = []
    seen: set[str] = set()
    for item in items if isinstance(items, list) else []:
        session = _decode_session(item)
        if session is None or session.id in seen:
            continue
        seen.add(session.id)
        decoded.append(session)

    # Keep only the most recently inserted placeholder.
    placeholder_ids = [s.id for s in decoded if s.ticker == PLACEHOLDER_TICKER]
    if len(placeholder_ids) > 1:
        dropped = set(placeholder_ids[:-1])
        decoded = [s for s in decoded if s.id not in dropped]

    active_id = raw.get("active_session_id")
    if not isinstance(active_id, str) or active_id not in {s.id for s in decoded}:
        active_id = None
    sessions = tuple(replace(s, is_active=s.id == active_id) for s in decoded)
    return SessionsState(
        sessions=sessions,
        active_session_id=active_id,
        has_placeholder=any(s.is_placeholder for s in sessions),
    )


def _decode_widget(item: object, screen: str) -> Widget | None:
    if not isinstance(item, dict):
        return None
    widget_id = item.get("id")
    if not isinstance(widget_id, str) or not widget_id:
        return None
    try:
        size = WidgetSize(item.get("size", WidgetSize.MEDIUM.value))
    except ValueError:
        size = WidgetSize.MEDIUM
    layout_raw = item.get("layout")
    layout = None
    if isinstance(layout_raw, dict):
        try:
            layout = WidgetLayout(
                x=float(layout_raw["x"]),
                y=float(layout_raw["y"]),
                w=float(layout_raw["w"]),
                h=float(layout_raw["h"]),
            )
        except (KeyError, TypeError, ValueError):
            layout = None
    content = item.get("content")
    stock = item.get("stock")
    return Widget(
        id=widget_id,
        screen=screen,
        size=size,
        data=item.get("data"),
        is_resizable=bool(item.get("is_resizable", True)),
        content=content if isinstance(content, str) else None,
        stock=stock if isinstance(stock, str) else None,
        layout=layout,
    )


def decode_widgets(raw: object) -> WidgetsState:
    if not isinstance(raw, dict):
        return WidgetsState()
    by_screen: dict[str, tuple[Widget, ...]] = {}
    for screen, items in raw.items():
        if not isinstance(screen, str) or not isinstance(items, list):
            continue
        widgets: list[Widget] = []
        seen: set[str] = set()
        for item in items:
            widget = _decode_widget(item, screen)
            if widget is None or widget.id in seen:
                continue
            seen.add(widget.id)
            widgets.append(widget)
        if widgets:
            by_screen[screen] = tuple(widgets)
    return WidgetsState(by_screen=MappingProxyType(by_screen))


def _decode_time(raw: object) -> datetime | None:
    if not isinstance(raw, str):
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _decode_float(raw: object) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    return float(raw)


def decode_portfolio(raw: object) -> PortfolioState:
    """Rebuild holdings through the reducer so invalid entries are dropped."""
    if not isinstance(raw, dict):
        return PortfolioState()
    items = raw.get("holdings")
    state = PortfolioState()
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        holding_id = item.get("id")
        if not isinstance(holding_id, str) or not holding_id or state.get(holding_id) is not None:
            continue
        name = item.get("name")
        sector = item.get("sector")
        holding = Holding(
            id=holding_id,
            symbol=item.get("symbol"),  # type: ignore[arg-type]
            shares=item.get("shares"),  # type: ignore[arg-type]
            avg_cost=item.get("avg_cost"),  # type: ignore[arg-type]
            current_price=item.get("current_price", item.get("avg_cost")),  # type: ignore[arg-type]
            name=name if isinstance(name, str) else None,
            sector=sector if isinstance(sector, str) else DEFAULT_SECTOR,
            date_added=_decode_time(item.get("date_added")),
            daily_change=_decode_float(item.get("daily_change")),
            daily_change_percent=_decode_float(item.get("daily_change_percent")),
        )
        state = reduce_portfolio(state, Intent(IntentType.ADD_HOLDING, {"holding": holding}))
    return replace(state, last_updated=_decode_time(raw.get("last_updated")))


def decode_state(data: Mapping[str, object], whitelist: Iterable[str] = PERSISTED_BRANCHES) -> AppState:
    """Restore whitelisted branches from a snapshot; the rest stay default."""
    branches = set(whitelist)
    state = AppState()
    if "auth" in branches:
        auth = data.get("auth")
        if isinstance(auth, dict):
            state = replace(state, auth=AuthState(is_logged_in=bool(auth.get("is_logged_in", False))))
    if "sessions" in branches:
        state = replace(state, sessions=decode_sessions(data.get("sessions")))
    if "widgets" in branches:
        state = replace(state, widgets=decode_widgets(data.get("widgets")))
    if "portfolio" in branches:
        state = replace(state, portfolio=decode_portfolio(data.get("portfolio")))
    return state


def _json_default(value: object) -> object:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class StateStore:
    """JSON snapshot file for the persisted branches of `AppState`."""

    def __init__(self, path: Path = STATE_PATH, whitelist: Iterable[str] = PERSISTED_BRANCHES) -> None:
        self.path = path
        self.whitelist = tuple(whitelist)

    def load(self) -> AppState:
        """Load state from disk; a missing or unreadable file yields an empty state."""
        if not self.path.exists():
            logger.debug("No state file found at %s, starting empty", self.path)
            return AppState()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load dashboard state from %s: %s", self.path, e)
            return AppState()

        if not isinstance(data, dict):
            logger.warning("Dashboard state at %s is not an object, ignoring", self.path)
            return AppState()

        state = decode_state(data, self.whitelist)
        logger.info(
            "Loaded dashboard state: %d sessions, active=%s, %d screens, %d holdings, logged_in=%s",
            len(state.sessions.sessions),
            state.sessions.active_session_id[:8] if state.sessions.active_session_id else None,
            len(state.widgets.by_screen),
            len(state.portfolio.holdings),
            state.auth.is_logged_in,
        )
        return state

    def save(self, state: AppState) -> None:
        """Write the snapshot with atomic replacement and an advisory lock."""
        snapshot = encode_state(state, self.whitelist)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_path = self.path.with_suffix(".lock")
            with open(lock_path, "w", encoding="utf-8") as lock_file:
                try:
                    import fcntl

                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                except (ImportError, OSError):
                    pass  # fcntl not available or locking failed, proceed best-effort

                tmp_path = self.path.with_suffix(".tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2, default=_json_default)
                    f.flush()
                    os.fsync(f.fileno())

                os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save dashboard state to %s: %s", self.path, e)
            return

        logger.debug("Saved dashboard state (%s) to %s", ", ".join(self.whitelist), self.path)

    async def load_async(self) -> AppState:
        return await asyncio.to_thread(self.load)

    async def save_async(self, state: AppState) -> None:
        await asyncio.to_thread(self.save, state)
