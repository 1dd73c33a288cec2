"""Replay of the trade log into flat-to-flat positions and summary statistics."""

import math
from dataclasses import replace
from typing import List, Optional, Sequence

from .trading_models import (
    BUY,
    CLOSED,
    LONG,
    OPEN,
    SHORT,
    GroupedPosition,
    PerformanceStats,
    Trade,
    closing_pnl,
    weighted_average_price,
)


def _open_group(trade: Trade, quantity: int, group_id: str) -> GroupedPosition:
    return GroupedPosition(
        id=group_id,
        direction=LONG if trade.type == BUY else SHORT,
        status=OPEN,
        instrument=trade.instrument,
        entry_time=trade.timestamp,
        avg_entry_price=trade.price,
        total_quantity=quantity,
        remaining_quantity=quantity,
        executions=[replace(trade, quantity=quantity, pnl=None)],
    )


def _close_portion(group: GroupedPosition, trade: Trade, quantity: int) -> None:
    sign = 1 if group.direction == LONG else -1
    pnl = closing_pnl(sign, group.avg_entry_price, trade.price, quantity)
    group.realized_pnl += pnl
    group.avg_exit_price = weighted_average_price(
        group.avg_exit_price or 0.0, group.exited_quantity, trade.price, quantity
    )
    group.exited_quantity += quantity
    group.remaining_quantity -= quantity
    group.executions.append(replace(trade, quantity=quantity, pnl=pnl))
    if group.remaining_quantity == 0:
        group.status = CLOSED
        group.exit_time = trade.timestamp
        group.duration_minutes = (group.exit_time - group.entry_time) / 60


def group_trades_into_positions(
    trades: Sequence[Trade],
    mark_price: Optional[float] = None,
) -> List[GroupedPosition]:
    """
    Rebuild discrete positions from the trade log.

    Uses the same signed-quantity rules as the trading engine. A trade that
    flips the position is split: the closing part is recorded on the group it
    closes and the remainder opens the next group, each with its own quantity.

    Args:
        trades: trade log in execution order
        mark_price: optional price used for the open group's unrealized PnL

    Returns:
        List[GroupedPosition]: most recent first
    """
    positions: List[GroupedPosition] = []
    current: Optional[GroupedPosition] = None

    for trade in trades:
        if current is None:
            current = _open_group(trade, trade.quantity, f"pos-{trade.id}")
            continue

        same_direction = (current.direction == LONG) == (trade.type == BUY)
        if same_direction:
            # scale in
            current.avg_entry_price = weighted_average_price(
                current.avg_entry_price, current.remaining_quantity, trade.price, trade.quantity
            )
            current.total_quantity += trade.quantity
            current.remaining_quantity += trade.quantity
            current.executions.append(trade)
            continue

        closing_qty = min(current.remaining_quantity, trade.quantity)
        flip_qty = trade.quantity - closing_qty
        _close_portion(current, trade, closing_qty)

        if current.is_closed():
            positions.append(current)
            current = None
        if flip_qty > 0:
            current = _open_group(trade, flip_qty, f"pos-{trade.id}-flip")

    if current is not None:
        if mark_price is not None:
            sign = 1 if current.direction == LONG else -1
            current.unrealized_pnl = (mark_price - current.avg_entry_price) * current.remaining_quantity * sign
        positions.append(current)

    positions.reverse()
    return positions


def calculate_performance_stats(positions: Sequence[GroupedPosition]) -> PerformanceStats:
    """
    Summary statistics over CLOSED grouped positions.

    Returns:
        PerformanceStats: win rate is a percentage; profit factor is infinite
        when there are wins and no losses, and 0 when there are neither
    """
    stats = PerformanceStats()
    closed = [p for p in positions if p.is_closed()]
    if not closed:
        return stats

    total_win = 0.0
    total_loss = 0.0
    for p in closed:
        stats.total_pnl += p.realized_pnl
        if p.realized_pnl > 0:
            stats.winning_trades += 1
            total_win += p.realized_pnl
        elif p.realized_pnl < 0:
            stats.losing_trades += 1
            total_loss += abs(p.realized_pnl)

        bucket = stats.longs if p.direction == LONG else stats.shorts
        bucket.count += 1
        bucket.pnl += p.realized_pnl

    stats.total_trades = len(closed)
    stats.win_rate = stats.winning_trades / stats.total_trades * 100
    stats.avg_win = total_win / stats.winning_trades if stats.winning_trades else 0.0
    stats.avg_loss = total_loss / stats.losing_trades if stats.losing_trades else 0.0

    if total_loss > 0:
        stats.profit_factor = total_win / total_loss
    elif total_win > 0:
        stats.profit_factor = math.inf

    win_fraction = stats.winning_trades / stats.total_trades
    loss_fraction = stats.losing_trades / stats.total_trades
    stats.expectancy = win_fraction * stats.avg_win - loss_fraction * stats.avg_loss
    stats.max_drawdown = _max_drawdown(closed)
    return stats


def _max_drawdown(closed: Sequence[GroupedPosition]) -> float:
    """Largest peak-to-trough drop of cumulative realized PnL ordered by exit time."""
    cumulative = 0.0
    peak = 0.0
    max_drawdown = 0.0
    for p in sorted(closed, key=lambda g: g.exit_time or 0):
        cumulative += p.realized_pnl
        peak = max(peak, cumulative)
        max_drawdown = max(max_drawdown, peak - cumulative)
    return max_drawdown
