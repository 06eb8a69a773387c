"""Portfolio holdings: the reducer and derived valuation.

Holdings keep only what the user entered plus the latest quote. Cost,
value, gain and the aggregate totals are derived on read, so they can never
disagree with the stored shares and prices.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime

from instrukt_ai_logging import get_logger

from tickerdesk.state.intents import Intent, IntentType

logger = get_logger(__name__)

DEFAULT_SECTOR = "Unknown"

# Fields an UPDATE_HOLDING intent may change.
EDITABLE_FIELDS = ("symbol", "name", "shares", "avg_cost", "current_price", "sector")


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


@dataclass(frozen=True)
class Holding:
    """A position in one symbol."""

    id: str
    symbol: str
    shares: float
    avg_cost: float
    current_price: float
    name: str | None = None
    sector: str = DEFAULT_SECTOR
    date_added: datetime | None = None
    daily_change: float = 0.0
    daily_change_percent: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.shares * self.avg_cost

    @property
    def current_value(self) -> float:
        return self.shares * self.current_price

    @property
    def unrealized_gain(self) -> float:
        return self.current_value - self.total_cost

    @property
    def unrealized_gain_percent(self) -> float:
        return _percent(self.unrealized_gain, self.total_cost)


@dataclass(frozen=True)
class PortfolioTotals:
    total_value: float = 0.0
    total_cost: float = 0.0
    total_return: float = 0.0
    total_return_percent: float = 0.0
    daily_change: float = 0.0
    daily_change_percent: float = 0.0


@dataclass(frozen=True)
class PortfolioState:
    """Holdings in insertion order and the time of the last price update."""

    holdings: tuple[Holding, ...] = ()
    last_updated: datetime | None = None

    def get(self, holding_id: str | None) -> Holding | None:
        for holding in self.holdings:
            if holding.id == holding_id:
                return holding
        return None

    @property
    def totals(self) -> PortfolioTotals:
        return portfolio_totals(self.holdings)


def portfolio_totals(holdings: tuple[Holding, ...]) -> PortfolioTotals:
    """Aggregate value, return and daily change across holdings."""
    total_value = sum(h.current_value for h in holdings)
    total_cost = sum(h.total_cost for h in holdings)
    daily_change = sum(h.daily_change for h in holdings)
    total_return = total_value - total_cost
    # Daily percent is measured against yesterday's value.
    previous_value = total_value - daily_change
    return PortfolioTotals(
        total_value=total_value,
        total_cost=total_cost,
        total_return=total_return,
        total_return_percent=_percent(total_return, total_cost),
        daily_change=daily_change,
        daily_change_percent=_percent(daily_change, previous_value) if total_value > 0 else 0.0,
    )


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def _amount(value: object, *, positive: bool = False) -> float | None:
    """Finite, non-negative number as float (strictly positive if asked)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0 or (positive and number == 0):
        return None
    return number


def _validated(holding: Holding) -> Holding | None:
    symbol = normalize_symbol(holding.symbol) if isinstance(holding.symbol, str) else ""
    shares = _amount(holding.shares, positive=True)
    avg_cost = _amount(holding.avg_cost)
    current_price = _amount(holding.current_price)
    if not symbol or shares is None or avg_cost is None or current_price is None:
        return None
    sector = holding.sector if isinstance(holding.sector, str) and holding.sector.strip() else DEFAULT_SECTOR
    return replace(
        holding,
        symbol=symbol,
        shares=shares,
        avg_cost=avg_cost,
        current_price=current_price,
        sector=sector,
    )


def _unique_id(state: PortfolioState, candidate: str) -> str:
    if state.get(candidate) is None:
        return candidate
    suffix = 1
    while state.get(f"{candidate}-{suffix}") is not None:
        suffix += 1
    return f"{candidate}-{suffix}"


def _apply_prices(state: PortfolioState, prices: Mapping[str, object], updated_at: datetime | None) -> PortfolioState:
    quotes: dict[str, float] = {}
    for symbol, raw in prices.items():
        price = _amount(raw, positive=True)
        if isinstance(symbol, str) and price is not None:
            quotes[normalize_symbol(symbol)] = price
    if not quotes:
        return state

    changed = False
    holdings: list[Holding] = []
    for holding in state.holdings:
        price = quotes.get(holding.symbol)
        if price is None:
            holdings.append(holding)
            continue
        move = price - holding.current_price
        holdings.append(
            replace(
                holding,
                current_price=price,
                daily_change=move * holding.shares,
                daily_change_percent=_percent(move, holding.current_price),
            )
        )
        changed = True
    if not changed:
        logger.debug("No holdings match quotes for %s", ", ".join(sorted(quotes)))
        return state
    return PortfolioState(holdings=tuple(holdings), last_updated=updated_at or state.last_updated)


def reduce_portfolio(state: PortfolioState, intent: Intent) -> PortfolioState:
    """Apply intent to the holdings and return the new state."""
    t = intent.type
    p = intent.payload

    if t is IntentType.ADD_HOLDING:
        holding = p.get("holding")
        if not isinstance(holding, Holding) or not holding.id:
            return state
        validated = _validated(holding)
        if validated is None:
            logger.warning("Rejecting invalid holding %r", holding)
            return state
        validated = replace(validated, id=_unique_id(state, validated.id))
        return replace(state, holdings=(*state.holdings, validated))

    if t is IntentType.UPDATE_HOLDING:
        holding_id = p.get("holding_id")
        updates = p.get("updates") or {}
        current = state.get(holding_id)
        if current is None:
            logger.debug("Holding %s not found, ignoring update", holding_id)
            return state
        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            logger.debug("Ignoring non-editable holding fields: %s", ", ".join(sorted(unknown)))
        changes = {name: value for name, value in updates.items() if name in EDITABLE_FIELDS}
        if not changes:
            return state
        updated = _validated(replace(current, **changes))  # type: ignore[arg-type]
        if updated is None:
            logger.warning("Rejecting invalid update for holding %s: %r", holding_id, changes)
            return state
        if updated == current:
            return state
        holdings = tuple(updated if h.id == holding_id else h for h in state.holdings)
        return replace(state, holdings=holdings)

    if t is IntentType.REMOVE_HOLDING:
        holding_id = p.get("holding_id")
        if state.get(holding_id) is None:
            return state
        return replace(state, holdings=tuple(h for h in state.holdings if h.id != holding_id))

    if t is IntentType.UPDATE_PRICES:
        prices = p.get("prices")
        if not isinstance(prices, Mapping):
            return state
        return _apply_prices(state, prices, p.get("updated_at"))

    return state
