"""Unit tests for dashboard state persistence."""

import json
from datetime import UTC, datetime

import pytest

from tickerdesk.constants import PLACEHOLDER_TICKER
from tickerdesk.state.app_state import AppState, reduce_state
from tickerdesk.state.auth import AuthState
from tickerdesk.state.intents import Intent, IntentType
from tickerdesk.state.portfolio import Holding
from tickerdesk.state.state_store import StateStore, decode_portfolio, decode_sessions, encode_state
from tickerdesk.state.widgets import Widget, WidgetLayout, WidgetSize

NOW = datetime(2024, 6, 1, 9, 30, tzinfo=UTC)


def _populated_state():
    state = AppState(auth=AuthState(is_logged_in=True))
    holding = Holding(id="h1", symbol="AAPL", shares=10, avg_cost=150.0, current_price=150.0, date_added=NOW)
    state = reduce_state(state, Intent(IntentType.ADD_HOLDING, {"holding": holding}))
    state = reduce_state(state, Intent(IntentType.UPDATE_PRICES, {"prices": {"AAPL": 165.0}, "updated_at": NOW}))
    state = reduce_state(
        state,
        Intent(IntentType.CREATE_SESSION, {"ticker": "AAPL", "session_id": "s1", "created_at": NOW}),
    )
    state = reduce_state(
        state,
        Intent(IntentType.UPDATE_SESSION_DATA, {"session_id": "s1", "path": "news.activeFilter", "value": "Top"}),
    )
    widget = Widget(
        id="w1",
        screen="dashboard",
        size=WidgetSize.LARGE,
        content="StockCard",
        stock="AAPL",
        layout=WidgetLayout(x=0, y=0, w=6, h=4),
    )
    return reduce_state(state, Intent(IntentType.ADD_WIDGET, {"screen": "dashboard", "widget": widget}))


def test_save_then_load_restores_persisted_branches(tmp_path):
    store = StateStore(tmp_path / "state.json")
    state = _populated_state()

    store.save(state)
    loaded = store.load()

    assert loaded.auth.is_logged_in is True
    assert loaded.sessions.active_session_id == "s1"
    assert loaded.sessions.sessions[0].created_at == NOW
    assert loaded.sessions.sessions[0].session_data["news"]["activeFilter"] == "Top"
    assert loaded.widgets.get("dashboard", "w1") == state.widgets.get("dashboard", "w1")
    assert loaded.portfolio == state.portfolio
    assert loaded.portfolio.get("h1").daily_change == 150.0
    assert loaded.portfolio.last_updated == NOW


def test_whitelist_limits_written_branches(tmp_path):
    path = tmp_path / "state.json"
    StateStore(path, whitelist=["sessions"]).save(_populated_state())

    data = json.loads(path.read_text())
    assert set(data) == {"version", "sessions"}


def test_load_missing_file_returns_empty_state(tmp_path):
    assert StateStore(tmp_path / "missing.json").load() == AppState()


def test_load_corrupt_file_returns_empty_state(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json")
    assert StateStore(path).load() == AppState()


def test_load_non_object_returns_empty_state(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[1, 2]")
    assert StateStore(path).load() == AppState()


def test_save_leaves_no_temp_file(tmp_path):
    path = tmp_path / "nested" / "state.json"
    StateStore(path).save(AppState())

    assert path.exists()
    assert not path.with_suffix(".tmp").exists()


def test_decode_sessions_repairs_invariants():
    raw = {
        "sessions": [
            {"id": "p1", "ticker": PLACEHOLDER_TICKER, "created_at": NOW.isoformat(), "is_active": True},
            {"id": "s1", "ticker": "AAPL", "created_at": NOW.isoformat(), "is_active": True},
            {"id": "s1", "ticker": "MSFT", "created_at": NOW.isoformat()},
            {"id": "p2", "ticker": PLACEHOLDER_TICKER, "created_at": NOW.isoformat()},
            {"id": "bad", "ticker": "TSLA", "created_at": "yesterday"},
        ],
        "active_session_id": "p1",
    }

    state = decode_sessions(raw)

    assert [s.id for s in state.sessions] == ["s1", "p2"]
    assert state.sessions[0].ticker == "AAPL"
    # p1 was dropped, so the stored active pointer is no longer valid
    assert state.active_session_id is None
    assert not any(s.is_active for s in state.sessions)
    assert state.has_placeholder is True


def test_encode_state_is_json_serializable():
    snapshot = encode_state(_populated_state())
    assert json.loads(json.dumps(snapshot))["widgets"]["dashboard"][0]["size"] == "large"


@pytest.mark.asyncio
async def test_async_roundtrip(tmp_path):
    store = StateStore(tmp_path / "state.json")
    await store.save_async(_populated_state())
    loaded = await store.load_async()
    assert loaded.sessions.active_session_id == "s1"


def test_decode_portfolio_drops_invalid_holdings():
    raw = {
        "holdings": [
            {"id": "h1", "symbol": "aapl", "shares": 10, "avg_cost": 150.0, "date_added": NOW.isoformat()},
            {"id": "h1", "symbol": "MSFT", "shares": 1, "avg_cost": 300.0},
            {"id": "h2", "symbol": "TSLA", "shares": -5, "avg_cost": 200.0},
            {"id": "h3", "symbol": 42, "shares": 1, "avg_cost": 1.0},
            "garbage",
        ],
        "last_updated": "not a date",
    }

    portfolio = decode_portfolio(raw)

    assert [h.id for h in portfolio.holdings] == ["h1"]
    holding = portfolio.get("h1")
    assert holding.symbol == "AAPL"
    # A missing quote falls back to the average cost.
    assert holding.current_price == 150.0
    assert holding.date_added == NOW
    assert portfolio.last_updated is None


def test_portfolio_snapshot_is_plain_json():
    snapshot = json.loads(json.dumps(encode_state(_populated_state())))

    entry = snapshot["portfolio"]["holdings"][0]
    assert entry["symbol"] == "AAPL"
    assert entry["current_price"] == 165.0
    assert snapshot["portfolio"]["last_updated"] == NOW.isoformat()
