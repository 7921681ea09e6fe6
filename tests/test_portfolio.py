from datetime import date

import pytest

from competition_bot.accounting.pnl_tracker import PnLTracker
from competition_bot.accounting.portfolio import Portfolio
from competition_bot.config.constants import BUY, SELL
from competition_bot.execution.order import Fill


def fill(side, qty, price, fee=0.0, symbol="WETH"):
    return Fill(order_id="o1", symbol=symbol, side=side, quantity=qty, price=price, fee=fee, is_partial=False)


def test_buy_fill_moves_cash_into_position():
    p = Portfolio.with_cash(10_000.0)
    realized = p.apply_fill(fill(BUY, 1.0, 100.0, fee=0.3))

    assert realized == 0.0
    assert p.cash == pytest.approx(9_899.7)
    assert p.positions["WETH"].average_cost == pytest.approx(100.3)
    p.mark("WETH", 100.0)
    assert p.equity() == pytest.approx(9_999.7)


def test_sell_fill_realizes_pnl():
    p = Portfolio.with_cash(10_000.0)
    p.apply_fill(fill(BUY, 2.0, 100.0))
    realized = p.apply_fill(fill(SELL, 1.0, 110.0))

    assert realized == pytest.approx(10.0)
    assert p.realized_pnl == pytest.approx(10.0)
    assert p.cash == pytest.approx(9_910.0)
    assert p.positions["WETH"].quantity == pytest.approx(1.0)


def test_sell_is_clamped_to_held_quantity():
    p = Portfolio.with_cash(1_000.0)
    p.apply_fill(fill(BUY, 1.0, 100.0))
    p.apply_fill(fill(SELL, 5.0, 100.0))
    assert "WETH" not in p.positions
    assert p.cash == pytest.approx(1_000.0)


def test_sell_without_position_raises():
    with pytest.raises(ValueError):
        Portfolio.with_cash(1_000.0).apply_fill(fill(SELL, 1.0, 100.0))


def test_drawdown_from_high_water_mark():
    p = Portfolio.with_cash(10_000.0)
    p.apply_fill(fill(BUY, 10.0, 100.0))
    p.mark("WETH", 50.0)
    assert p.equity() == pytest.approx(9_500.0)
    assert p.current_drawdown() == pytest.approx(0.05)


def test_roll_day_resets_daily_reference():
    p = Portfolio.with_cash(10_000.0)
    assert p.roll_day(date(2024, 1, 1)) is False
    p.cash = 9_000.0
    assert p.daily_pnl_pct() == pytest.approx(-0.1)
    assert p.roll_day(date(2024, 1, 2)) is True
    assert p.day_start_equity == pytest.approx(9_000.0)
    assert p.daily_pnl_pct() == 0.0


def test_snapshot_reports_pnl_percent():
    p = Portfolio.with_cash(10_000.0)
    p.apply_fill(fill(BUY, 1.0, 100.0))
    p.mark("WETH", 200.0)
    snap = p.snapshot(trade_count=1)
    assert snap.total_value == pytest.approx(10_100.0)
    assert snap.pnl_pct == pytest.approx(1.0)
    assert snap.positions == {"WETH": 1.0}
    assert snap.trade_count == 1


def test_pnl_tracker_streaks_and_attribution():
    tracker = PnLTracker(initial_equity=1_000.0)
    tracker.mark_exit(20.0, 200.0, ("momentum", "arbitrage"))
    tracker.mark_exit(10.0, 100.0, ("momentum",))
    tracker.mark_exit(-50.0, 100.0, ("arbitrage",))

    assert tracker.win_rate == pytest.approx(2 / 3)
    assert tracker.max_consecutive_wins == 2
    assert tracker.consecutive_losses == 1
    assert tracker.largest_win == pytest.approx(20.0)
    assert tracker.largest_loss == pytest.approx(-50.0)
    assert tracker.profit_factor == pytest.approx(30.0 / 50.0)
    assert tracker.strategy_stats["momentum"].pnl == pytest.approx(20.0)
    assert tracker.strategy_stats["arbitrage"].pnl == pytest.approx(-40.0)
    # realized equity went 1000 -> 1030 -> 980
    assert tracker.max_drawdown == pytest.approx(50.0 / 1_030.0)
