"""Asset trades (gold, currencies, crypto) and the derived portfolio.

A buy takes round(quantity * price) out of the wallet, a sell puts it back.
Positions are rebuilt by replaying trades in date order with weighted-average
cost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from kasa.dates import is_valid_date, local_date_iso, parse_any_date
from kasa.ledger import wallet
from kasa.ledger.errors import NotFoundError, ValidationError
from kasa.ledger.models import TRADE_BUY, TRADE_SELL, AssetTrade, LedgerState

logger = logging.getLogger(__name__)

# Residual quantities below this are treated as a closed position
QUANTITY_EPSILON = 0.00001

ASSET_LABELS = {
    "gram-altin": "Gram gold",
    "usd": "US dollar",
    "eur": "Euro",
    "btc": "Bitcoin",
}


def asset_label(asset_type: str) -> str:
    return ASSET_LABELS.get(asset_type, asset_type)


@dataclass
class Position:
    asset_type: str
    quantity: float = 0.0
    total_cost: float = 0.0

    @property
    def average_cost(self) -> float:
        return self.total_cost / self.quantity if self.quantity > 0 else 0.0

    def market_value(self, unit_price: int) -> int:
        return int(round(self.quantity * unit_price))

    def profit(self, unit_price: int) -> int:
        return self.market_value(unit_price) - int(round(self.total_cost))


def holding(state: LedgerState, asset_type: str) -> float:
    """Net quantity held: buys minus sells, in insertion order."""
    qty = 0.0
    for trade in state.assets:
        if trade.asset_type == asset_type:
            qty += trade.quantity if trade.trade_type == TRADE_BUY else -trade.quantity
    return qty


def _validate_trade(asset_type: str, quantity: float, price: int, trade_type: str, iso_date: str) -> None:
    if not asset_type:
        raise ValidationError("Asset type is required")
    if not quantity or quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity!r}")
    if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
        raise ValidationError(f"Price must be a positive number of minor units, got {price!r}")
    if trade_type not in (TRADE_BUY, TRADE_SELL):
        raise ValidationError(f"Unknown trade type: {trade_type!r}")
    if not is_valid_date(iso_date):
        raise ValidationError(f"Invalid date: {iso_date!r}")


def _trade_title(trade: AssetTrade, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = "Investment buy" if trade.trade_type == TRADE_BUY else "Investment sell"
    return f"{prefix}: {asset_label(trade.asset_type)} ({trade.quantity:g}x)"


def get_trade(state: LedgerState, trade_id: int | str) -> AssetTrade:
    for trade in state.assets:
        if trade.id == trade_id:
            return trade
    raise NotFoundError("Asset trade", trade_id)


def record_trade(
    state: LedgerState, asset_type: str, quantity: float, price: int,
    trade_type: str, iso_date: str,
) -> AssetTrade:
    """Record a buy or sell and move its total through the wallet.

    A sell may not exceed the quantity currently held.
    """
    _validate_trade(asset_type, quantity, price, trade_type, iso_date)
    if trade_type == TRADE_SELL:
        held = holding(state, asset_type)
        if quantity > held + QUANTITY_EPSILON:
            raise ValidationError(f"Only {held:g} {asset_label(asset_type)} held, cannot sell {quantity:g}")
    iso_date = local_date_iso(parse_any_date(iso_date))
    trade = AssetTrade(
        asset_type=asset_type, quantity=quantity, price=price,
        trade_type=trade_type, iso_date=iso_date,
    )
    state.assets.append(trade)
    wallet.record_movement(state, _trade_title(trade), trade.wallet_impact, iso_date)
    logger.info("Recorded %s of %g %s at %d", trade_type, quantity, asset_type, price)
    return trade


def sell_all(state: LedgerState, asset_type: str, price: int, iso_date: str) -> AssetTrade:
    """Close the whole position at `price`."""
    held = holding(state, asset_type)
    if held <= QUANTITY_EPSILON:
        raise ValidationError(f"No {asset_label(asset_type)} held")
    return record_trade(state, asset_type, held, price, TRADE_SELL, iso_date)


def edit_trade(
    state: LedgerState, trade_id: int | str, *,
    quantity: float | None = None, price: int | None = None,
    trade_type: str | None = None, iso_date: str | None = None,
) -> AssetTrade:
    """Edit a trade; the wallet receives the change in its impact."""
    trade = get_trade(state, trade_id)
    new_qty = trade.quantity if quantity is None else round(quantity, 2)
    new_price = trade.price if price is None else price
    new_type = trade.trade_type if trade_type is None else trade_type
    new_date = trade.iso_date if iso_date is None else iso_date
    _validate_trade(trade.asset_type, new_qty, new_price, new_type, new_date)

    old_impact = trade.wallet_impact
    trade.quantity = new_qty
    trade.price = new_price
    trade.trade_type = new_type
    trade.iso_date = local_date_iso(parse_any_date(new_date))
    wallet.record_movement(
        state, f"Adjustment: {asset_label(trade.asset_type)} ({trade.id})",
        trade.wallet_impact - old_impact, trade.iso_date,
    )
    return trade


def delete_trade(state: LedgerState, trade_id: int | str) -> AssetTrade:
    """Remove a trade and reverse its wallet movement."""
    trade = get_trade(state, trade_id)
    state.assets.remove(trade)
    wallet.record_movement(state, _trade_title(trade, "Cancelled"), -trade.wallet_impact)
    logger.info("Deleted asset trade %s", trade.id)
    return trade


def portfolio(state: LedgerState) -> dict[str, Position]:
    """Open positions keyed by asset type, replayed in date order."""
    positions: dict[str, Position] = {}
    for trade in sorted(state.assets, key=lambda t: t.iso_date):
        pos = positions.setdefault(trade.asset_type, Position(trade.asset_type))
        if trade.trade_type == TRADE_BUY:
            pos.total_cost += trade.quantity * trade.price
            pos.quantity += trade.quantity
        elif pos.quantity <= 0:
            pos.quantity = 0.0
            pos.total_cost = 0.0
        else:
            avg = pos.average_cost
            pos.quantity -= trade.quantity
            pos.total_cost -= trade.quantity * avg
        if pos.quantity <= QUANTITY_EPSILON:
            pos.quantity = 0.0
            pos.total_cost = 0.0
    return {k: p for k, p in positions.items() if p.quantity > 0}
