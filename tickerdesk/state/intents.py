"""Intent identifiers and payloads for reducer-driven state updates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, TypedDict, cast

if TYPE_CHECKING:
    from tickerdesk.state.portfolio import Holding
    from tickerdesk.state.session_path import DataPath
    from tickerdesk.state.widgets import Widget, WidgetLayout


class IntentType(str, Enum):
    """Intent identifiers for reducer-driven state updates."""

    # Sessions
    CREATE_SESSION = "create_session"
    CREATE_PLACEHOLDER_SESSION = "create_placeholder_session"
    SET_ACTIVE_SESSION = "set_active_session"
    CLOSE_SESSION = "close_session"
    SET_SESSION_TICKER = "set_session_ticker"
    UPDATE_SESSION_DATA = "update_session_data"
    UPDATE_ACTIVE_SESSION_DATA = "update_active_session_data"
    # Widgets
    ADD_WIDGET = "add_widget"
    REMOVE_WIDGET = "remove_widget"
    SET_WIDGETS = "set_widgets"
    UPDATE_WIDGET_SIZE = "update_widget_size"
    UPDATE_WIDGET_DATA = "update_widget_data"
    UPDATE_WIDGET_LAYOUT = "update_widget_layout"
    # Auth
    LOGIN_SUCCESS = "login_success"
    LOGOUT_SUCCESS = "logout_success"
    # Portfolio
    ADD_HOLDING = "add_holding"
    UPDATE_HOLDING = "update_holding"
    REMOVE_HOLDING = "remove_holding"
    UPDATE_PRICES = "update_prices"


@dataclass(frozen=True)
class Intent:
    """State transition request."""

    type: IntentType
    payload: "IntentPayload" = field(default_factory=lambda: cast(IntentPayload, {}))


class IntentPayload(TypedDict, total=False):
    session_id: str
    ticker: str
    created_at: datetime
    path: "DataPath | str"
    value: object
    screen: str
    widget_id: str
    widget: "Widget"
    widgets: "list[Widget]"
    size: str
    data: object
    layout: "WidgetLayout"
    holding: "Holding"
    holding_id: str
    updates: "dict[str, object]"
    prices: "dict[str, float]"
    updated_at: datetime
