"""Composition root: owns the dashboard state and wires its collaborators.

`DashboardController` is the only place state changes: UI events call its
operations, which dispatch intents through the pure reducers, schedule a
snapshot of the persisted branches, and start fetches through the API
gateway. A fetched payload is applied only if its owning session or widget
still exists; closing or removing the owner cancels its in-flight fetches.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from instrukt_ai_logging import get_logger

from tickerdesk.api.client import DashboardAPIClient, JsonValue
from tickerdesk.api.errors import APIError
from tickerdesk.config import DashboardConfig
from tickerdesk.core.task_registry import OwnedTaskRegistry, SessionOwner, WidgetOwner
from tickerdesk.paths import STATE_PATH
from tickerdesk.state.app_state import AppState, changed_branches, reduce_state, select_active_session
from tickerdesk.state.intents import Intent, IntentType
from tickerdesk.state.portfolio import Holding
from tickerdesk.state.session_path import PathLike, SessionValue, as_path
from tickerdesk.state.sessions import Session, new_session_stamp
from tickerdesk.state.state_store import StateStore
from tickerdesk.state.widgets import Widget, WidgetLayout, WidgetSize

logger = get_logger(__name__)


class DashboardController:
    """Central controller for dashboard state, persistence and fetches."""

    def __init__(
        self,
        client: DashboardAPIClient,
        store: StateStore | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.tasks = OwnedTaskRegistry()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state = AppState()
        self._started = False
        self._save_pending = False
        self._save_task: asyncio.Task[None] | None = None
        client.set_sign_out_handler(self._on_forced_sign_out)

    @classmethod
    def from_config(cls, config: DashboardConfig) -> "DashboardController":
        client = DashboardAPIClient(config.api.base_url, timeout=config.api.timeout)
        store = None
        if config.persistence.enabled:
            path = Path(config.persistence.path).expanduser() if config.persistence.path else STATE_PATH
            store = StateStore(path, config.persistence.whitelist)
        return cls(client, store)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Connect and restore persisted state. Must finish before any read."""
        if self._started:
            return
        await self.client.connect()
        if self.store is not None:
            self._state = await self.store.load_async()
        self._started = True
        logger.info("Dashboard controller started (%d sessions restored)", len(self._state.sessions.sessions))

    async def stop(self) -> None:
        """Cancel in-flight fetches, write the final snapshot, close the client."""
        await self.tasks.shutdown()
        await self.flush()
        await self.client.close()
        self._started = False

    @property
    def state(self) -> AppState:
        self._require_started()
        return self._state

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("DashboardController.start() must complete before state is used")

    def dispatch(self, intent: Intent) -> AppState:
        """Apply intent to state and persist the branches it changed."""
        self._require_started()
        before = self._state
        after = reduce_state(before, intent)
        if after is before:
            return after
        self._state = after
        if self.store is not None and changed_branches(before, after) & set(self.store.whitelist):
            self._schedule_save(self.store)
        return after

    # --- Persistence ---

    def _schedule_save(self, store: StateStore) -> None:
        self._save_pending = True
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.get_running_loop().create_task(self._save_loop(store), name="persist-state")

    async def _save_loop(self, store: StateStore) -> None:
        # Coalesce bursts of dispatches into one write per loop pass.
        while self._save_pending:
            self._save_pending = False
            await store.save_async(self._state)

    async def flush(self) -> None:
        """Wait until the latest state has been written."""
        if self._save_task is not None and not self._save_task.done():
            await self._save_task
        if self._save_pending and self.store is not None:
            await self._save_loop(self.store)

    # --- Sessions ---

    def open_ticker(self, ticker: str) -> Session | None:
        session_id, created_at = new_session_stamp(self._clock())
        state = self.dispatch(
            Intent(IntentType.CREATE_SESSION, {"ticker": ticker, "session_id": session_id, "created_at": created_at})
        )
        return select_active_session(state)

    def open_new_tab(self) -> Session | None:
        session_id, created_at = new_session_stamp(self._clock())
        state = self.dispatch(
            Intent(IntentType.CREATE_PLACEHOLDER_SESSION, {"session_id": session_id, "created_at": created_at})
        )
        return select_active_session(state)

    def activate_session(self, session_id: str) -> None:
        self.dispatch(Intent(IntentType.SET_ACTIVE_SESSION, {"session_id": session_id}))

    def assign_ticker(self, session_id: str, ticker: str) -> None:
        self.dispatch(Intent(IntentType.SET_SESSION_TICKER, {"session_id": session_id, "ticker": ticker}))

    def close_session(self, session_id: str) -> None:
        self.tasks.cancel_owner(SessionOwner(session_id))
        self.dispatch(Intent(IntentType.CLOSE_SESSION, {"session_id": session_id}))

    def update_session_data(self, session_id: str, path: PathLike, value: SessionValue) -> None:
        self.dispatch(
            Intent(IntentType.UPDATE_SESSION_DATA, {"session_id": session_id, "path": as_path(path), "value": value})
        )

    def update_active_session_data(self, path: PathLike, value: SessionValue) -> None:
        self.dispatch(Intent(IntentType.UPDATE_ACTIVE_SESSION_DATA, {"path": as_path(path), "value": value}))

    # --- Widgets ---

    def add_widget(self, screen: str, widget: Widget) -> None:
        self.dispatch(Intent(IntentType.ADD_WIDGET, {"screen": screen, "widget": widget}))

    def remove_widget(self, screen: str, widget_id: str) -> None:
        self.tasks.cancel_owner(WidgetOwner(screen, widget_id))
        self.dispatch(Intent(IntentType.REMOVE_WIDGET, {"screen": screen, "widget_id": widget_id}))

    def set_widgets(self, screen: str, widgets: list[Widget]) -> None:
        """Replace a screen's widgets; cancels fetches of widgets that disappear."""
        kept = {widget.id for widget in widgets}
        for widget in self._state.widgets.by_screen.get(screen, ()):
            if widget.id not in kept:
                self.tasks.cancel_owner(WidgetOwner(screen, widget.id))
        self.dispatch(Intent(IntentType.SET_WIDGETS, {"screen": screen, "widgets": widgets}))

    def resize_widget(self, screen: str, widget_id: str, size: WidgetSize | str) -> None:
        self.dispatch(Intent(IntentType.UPDATE_WIDGET_SIZE, {"screen": screen, "widget_id": widget_id, "size": size}))

    def move_widget(self, screen: str, widget_id: str, layout: WidgetLayout) -> None:
        self.dispatch(
            Intent(IntentType.UPDATE_WIDGET_LAYOUT, {"screen": screen, "widget_id": widget_id, "layout": layout})
        )

    def update_widget_data(self, screen: str, widget_id: str, data: object) -> None:
        self.dispatch(Intent(IntentType.UPDATE_WIDGET_DATA, {"screen": screen, "widget_id": widget_id, "data": data}))

    # --- Portfolio ---

    def add_holding(
        self,
        symbol: str,
        shares: float,
        avg_cost: float,
        *,
        current_price: float | None = None,
        name: str | None = None,
        sector: str | None = None,
    ) -> Holding | None:
        """Add a position; returns it, or None when the input was rejected.

        The current price defaults to the average cost until quotes arrive.
        """
        holding = Holding(
            id=str(time.time_ns()),
            symbol=symbol,
            shares=shares,
            avg_cost=avg_cost,
            current_price=avg_cost if current_price is None else current_price,
            name=name,
            sector=sector or "",
            date_added=self._clock(),
        )
        before = self._state.portfolio
        state = self.dispatch(Intent(IntentType.ADD_HOLDING, {"holding": holding}))
        if state.portfolio is before:
            return None
        return state.portfolio.holdings[-1]

    def update_holding(self, holding_id: str, **updates: object) -> None:
        self.dispatch(Intent(IntentType.UPDATE_HOLDING, {"holding_id": holding_id, "updates": updates}))

    def remove_holding(self, holding_id: str) -> None:
        self.dispatch(Intent(IntentType.REMOVE_HOLDING, {"holding_id": holding_id}))

    def update_prices(self, prices: Mapping[str, float]) -> None:
        """Apply the latest quotes, keyed by symbol."""
        self.dispatch(Intent(IntentType.UPDATE_PRICES, {"prices": dict(prices), "updated_at": self._clock()}))

    # --- Fetches ---

    def fetch_session_data(
        self,
        session_id: str,
        path: PathLike,
        endpoint: str,
        *,
        params: dict[str, str] | None = None,
        error_path: PathLike | None = None,
    ) -> asyncio.Task[bool]:
        """Fetch `endpoint` and store the payload at `path` in the session.

        Args:
            session_id: Owning session; closing it cancels the fetch
            path: Where the payload goes, e.g. ``news.articles``
            endpoint: API path to GET
            params: Optional query parameters
            error_path: Where a user-facing error message goes on failure

        Returns:
            Task resolving to True when the payload was applied
        """
        target = as_path(path)
        error_target = as_path(error_path) if error_path is not None else None
        self._require_started()
        return self.tasks.spawn(
            self._load_session_data(session_id, target, endpoint, params, error_target),
            owner=SessionOwner(session_id),
            name=f"session-fetch:{session_id}:{target}",
        )

    async def _load_session_data(
        self,
        session_id: str,
        path: PathLike,
        endpoint: str,
        params: dict[str, str] | None,
        error_path: PathLike | None,
    ) -> bool:
        try:
            payload = await self.client.get_json(endpoint, params)
        except APIError as e:
            logger.warning("Fetch %s for session %s failed: %s", endpoint, session_id[:8], e)
            if error_path is not None and session_id in self._state.sessions:
                self.update_session_data(session_id, error_path, e.user_message)
            return False

        if session_id not in self._state.sessions:
            logger.debug("Session %s closed before %s arrived, dropping payload", session_id[:8], endpoint)
            return False
        self.update_session_data(session_id, path, payload)
        return True

    def fetch_widget_data(
        self,
        screen: str,
        widget_id: str,
        endpoint: str,
        *,
        params: dict[str, str] | None = None,
    ) -> asyncio.Task[bool]:
        """Fetch `endpoint` into the widget's cached payload."""
        self._require_started()
        return self.tasks.spawn(
            self._load_widget_data(screen, widget_id, endpoint, params),
            owner=WidgetOwner(screen, widget_id),
            name=f"widget-fetch:{screen}:{widget_id}",
        )

    async def _load_widget_data(
        self,
        screen: str,
        widget_id: str,
        endpoint: str,
        params: dict[str, str] | None,
    ) -> bool:
        try:
            payload: JsonValue = await self.client.get_json(endpoint, params)
        except APIError as e:
            logger.warning("Fetch %s for widget %s/%s failed: %s", endpoint, screen, widget_id, e)
            return False

        if self._state.widgets.get(screen, widget_id) is None:
            logger.debug("Widget %s/%s removed before %s arrived, dropping payload", screen, widget_id, endpoint)
            return False
        self.update_widget_data(screen, widget_id, payload)
        return True

    # --- Auth ---

    async def login(self, username: str, password: str) -> None:
        """Sign in through the gateway and mark the user logged in."""
        self._require_started()
        await self.client.login(username, password)
        self.dispatch(Intent(IntentType.LOGIN_SUCCESS))

    async def logout(self) -> None:
        """Sign out; the gateway's sign-out hook clears the auth state."""
        self._require_started()
        await self.client.logout()

    def _on_forced_sign_out(self) -> None:
        logger.info("Signed out, clearing auth state")
        if self._started:
            self.dispatch(Intent(IntentType.LOGOUT_SUCCESS))
