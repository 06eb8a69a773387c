"""Unit tests for the portfolio holdings reducer."""

from datetime import UTC, datetime

import pytest

from tickerdesk.state.intents import Intent, IntentType
from tickerdesk.state.portfolio import DEFAULT_SECTOR, Holding, PortfolioState, reduce_portfolio

NOW = datetime(2024, 6, 3, 16, 0, tzinfo=UTC)


def _add(state, holding_id, symbol, shares=10, avg_cost=100.0, current_price=None, **kwargs):
    holding = Holding(
        id=holding_id,
        symbol=symbol,
        shares=shares,
        avg_cost=avg_cost,
        current_price=avg_cost if current_price is None else current_price,
        **kwargs,
    )
    return reduce_portfolio(state, Intent(IntentType.ADD_HOLDING, {"holding": holding}))


def _prices(state, prices, updated_at=NOW):
    return reduce_portfolio(state, Intent(IntentType.UPDATE_PRICES, {"prices": prices, "updated_at": updated_at}))


def test_add_holding_normalizes_symbol_and_sector():
    state = _add(PortfolioState(), "h1", " aapl ", sector="")

    holding = state.get("h1")
    assert holding.symbol == "AAPL"
    assert holding.sector == DEFAULT_SECTOR
    assert holding.shares == 10.0


def test_add_holding_derives_cost_value_and_gain():
    state = _add(PortfolioState(), "h1", "MSFT", shares=4, avg_cost=250.0, current_price=300.0)

    holding = state.get("h1")
    assert holding.total_cost == 1000.0
    assert holding.current_value == 1200.0
    assert holding.unrealized_gain == 200.0
    assert holding.unrealized_gain_percent == pytest.approx(20.0)


def test_zero_cost_holding_has_zero_gain_percent():
    state = _add(PortfolioState(), "h1", "GIFT", avg_cost=0.0, current_price=5.0)
    assert state.get("h1").unrealized_gain_percent == 0.0


def test_add_holding_with_taken_id_gets_suffix():
    state = _add(PortfolioState(), "h1", "AAPL")
    state = _add(state, "h1", "MSFT")

    assert [h.id for h in state.holdings] == ["h1", "h1-1"]
    assert state.get("h1").symbol == "AAPL"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"symbol": "  "},
        {"shares": 0},
        {"shares": -3},
        {"shares": float("nan")},
        {"avg_cost": float("inf")},
        {"avg_cost": True},
    ],
)
def test_invalid_holding_is_rejected(kwargs):
    state = PortfolioState()
    fields = {"holding_id": "h1", "symbol": "AAPL", **kwargs}
    assert _add(state, **fields) is state


def test_update_holding_changes_editable_fields_only():
    state = _add(PortfolioState(), "h1", "AAPL", date_added=NOW)
    state = reduce_portfolio(
        state,
        Intent(IntentType.UPDATE_HOLDING, {"holding_id": "h1", "updates": {"shares": 12, "id": "other"}}),
    )

    holding = state.get("h1")
    assert holding.shares == 12.0
    assert holding.date_added == NOW
    assert state.get("other") is None


def test_invalid_or_unknown_update_is_noop():
    state = _add(PortfolioState(), "h1", "AAPL")

    bad = Intent(IntentType.UPDATE_HOLDING, {"holding_id": "h1", "updates": {"shares": -1}})
    ghost = Intent(IntentType.UPDATE_HOLDING, {"holding_id": "ghost", "updates": {"shares": 5}})
    same = Intent(IntentType.UPDATE_HOLDING, {"holding_id": "h1", "updates": {"symbol": "aapl"}})

    assert reduce_portfolio(state, bad) is state
    assert reduce_portfolio(state, ghost) is state
    assert reduce_portfolio(state, same) is state


def test_remove_holding():
    state = _add(PortfolioState(), "h1", "AAPL")
    state = _add(state, "h2", "MSFT")

    state = reduce_portfolio(state, Intent(IntentType.REMOVE_HOLDING, {"holding_id": "h1"}))

    assert [h.id for h in state.holdings] == ["h2"]
    assert reduce_portfolio(state, Intent(IntentType.REMOVE_HOLDING, {"holding_id": "h1"})) is state


def test_update_prices_records_daily_change():
    state = _add(PortfolioState(), "h1", "AAPL", shares=10, avg_cost=100.0)
    state = _add(state, "h2", "MSFT", shares=2, avg_cost=50.0)

    state = _prices(state, {"aapl": 110.0, "MSFT": 0, "TSLA": 200.0})

    apple = state.get("h1")
    assert apple.current_price == 110.0
    assert apple.daily_change == pytest.approx(100.0)
    assert apple.daily_change_percent == pytest.approx(10.0)
    # A zero quote is ignored rather than wiping the position's value.
    assert state.get("h2").current_price == 50.0
    assert state.last_updated == NOW


def test_update_prices_without_matching_holding_keeps_identity():
    state = _add(PortfolioState(), "h1", "AAPL")
    assert _prices(state, {"TSLA": 200.0}) is state
    assert _prices(state, {}) is state


def test_totals_aggregate_value_return_and_daily_change():
    state = _add(PortfolioState(), "h1", "AAPL", shares=10, avg_cost=100.0)
    state = _add(state, "h2", "MSFT", shares=5, avg_cost=200.0)
    state = _prices(state, {"AAPL": 110.0})

    totals = state.totals
    assert totals.total_value == pytest.approx(2100.0)
    assert totals.total_cost == pytest.approx(2000.0)
    assert totals.total_return == pytest.approx(100.0)
    assert totals.total_return_percent == pytest.approx(5.0)
    assert totals.daily_change == pytest.approx(100.0)
    assert totals.daily_change_percent == pytest.approx(5.0)


def test_empty_portfolio_totals_are_zero():
    totals = PortfolioState().totals
    assert totals.total_value == 0.0
    assert totals.total_return_percent == 0.0
    assert totals.daily_change_percent == 0.0


def test_unrelated_intent_keeps_identity():
    state = _add(PortfolioState(), "h1", "AAPL")
    assert reduce_portfolio(state, Intent(IntentType.LOGIN_SUCCESS)) is state
