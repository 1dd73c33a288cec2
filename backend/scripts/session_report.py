#!/usr/bin/env python3
"""Print grouped positions and performance stats for a saved replay session."""
from __future__ import annotations

import argparse
import math
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from barreplay.config import configure_logging  # noqa: E402
from barreplay.errors import SessionNotFoundError  # noqa: E402
from barreplay.schemas import SessionSnapshot  # noqa: E402
from barreplay.session_storage import DB_PATH, SessionStore  # noqa: E402
from barreplay.trade_analysis import calculate_performance_stats, group_trades_into_positions  # noqa: E402


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize the trades of a saved replay session.")
    parser.add_argument("name", nargs="?", default="current_session", help="Saved session name")
    parser.add_argument("--db", default=str(DB_PATH), help="Path to the sessions database")
    parser.add_argument("--mark", type=float, default=None, help="Mark price for an open position")
    return parser.parse_args(argv)


def format_time(ts: Optional[int]) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def build_report(snapshot: SessionSnapshot, mark_price: Optional[float] = None) -> str:
    trades = [t.to_trade() for t in snapshot.trades]
    groups = group_trades_into_positions(trades, mark_price)
    stats = calculate_performance_stats(groups)

    lines = [
        f"Session {snapshot.name}: {snapshot.config.instrument or '-'} {snapshot.config.interval}",
        f"Trades: {len(trades)}  Drawings: {len(snapshot.drawings)}",
        "",
    ]
    for group in reversed(groups):
        pnl = group.realized_pnl if group.is_closed() else (group.unrealized_pnl or 0.0)
        lines.append(
            f"{group.direction:<5} {group.status:<6} qty={group.total_quantity:<5} "
            f"entry={group.avg_entry_price:.2f} exit={(group.avg_exit_price or 0.0):.2f} "
            f"pnl={pnl:.2f} opened={format_time(group.entry_time)} closed={format_time(group.exit_time)}"
        )

    profit_factor = "inf" if math.isinf(stats.profit_factor) else f"{stats.profit_factor:.2f}"
    lines += [
        "",
        f"Closed positions: {stats.total_trades}  Win rate: {stats.win_rate:.1f}%",
        f"Total PnL: {stats.total_pnl:.2f}  Profit factor: {profit_factor}",
        f"Avg win: {stats.avg_win:.2f}  Avg loss: {stats.avg_loss:.2f}  Expectancy: {stats.expectancy:.2f}",
        f"Max drawdown: {stats.max_drawdown:.2f}",
        f"Longs: {stats.longs.count} ({stats.longs.pnl:.2f})  Shorts: {stats.shorts.count} ({stats.shorts.pnl:.2f})",
    ]
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()
    store = SessionStore(args.db)
    try:
        snapshot = store.load(args.name)
    except SessionNotFoundError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(build_report(snapshot, args.mark))
    return 0


if __name__ == "__main__":
    sys.exit(main())
