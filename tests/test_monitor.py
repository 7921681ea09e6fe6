import asyncio
import json

import pytest

from competition_bot.config.constants import BUY, SELL
from competition_bot.config.settings import MonitorSettings
from competition_bot.events import AlertRaised, EventBus, TradeExecuted, TradeFailed
from competition_bot.execution.order import ExecutionFailure, Fill, Order
from competition_bot.logging.metrics import sharpe_ratio, value_at_risk
from competition_bot.monitoring.alerts import CRITICAL, WARNING, Alert
from competition_bot.monitoring.monitor import CompetitionMonitor


def order(side=BUY, amount=1_000.0, strategies=("momentum",)):
    return Order(
        symbol="WETH",
        side=side,
        amount=amount,
        reference_price=100.0,
        requested_by=strategies,
        sizing_rationale="test",
    )


def executed(clock, side=BUY, realized=0.0, qty=10.0, strategies=("momentum",)):
    o = order(side, qty * 100.0, strategies)
    f = Fill(o.order_id, o.symbol, side, qty, 100.0, 0.0, False)
    return TradeExecuted(order=o, fill=f, realized_pnl=realized, equity=10_000.0 + realized, timestamp=clock())


def failed(clock):
    o = order()
    return TradeFailed(order=o, failure=ExecutionFailure(o.order_id, "timeout", 3), timestamp=clock())


def make_monitor(clock, **kwargs):
    bus = EventBus()
    kwargs.setdefault("memory_reader", lambda: 100.0)
    monitor = CompetitionMonitor(bus, initial_balance=10_000.0, clock=clock, **kwargs)
    return bus, monitor


def test_metrics_from_trade_events(clock):
    bus, monitor = make_monitor(clock)
    bus.publish(executed(clock, BUY))
    bus.publish(executed(clock, SELL, realized=50.0, strategies=("momentum", "arbitrage")))
    bus.publish(executed(clock, SELL, realized=-20.0))
    bus.publish(failed(clock))
    clock.advance(3600)

    m = monitor.update_metrics()
    assert m.total_trades == 4
    assert m.successful_trades == 3
    assert m.failed_trades == 1
    assert m.total_volume == pytest.approx(3_000.0)
    assert m.average_trade_size == pytest.approx(1_000.0)
    assert m.total_pnl == pytest.approx(30.0)
    assert m.total_pnl_pct == pytest.approx(0.3)
    assert m.win_rate == pytest.approx(50.0)
    assert m.trades_per_hour == pytest.approx(4.0)
    assert m.profit_factor == pytest.approx(2.5)
    assert m.strategy_performance["arbitrage"]["pnl"] == pytest.approx(25.0)
    assert m.strategy_performance["momentum"]["pnl"] == pytest.approx(5.0)


def test_critical_drawdown_alert_is_tagged_halt(clock):
    bus, monitor = make_monitor(clock)
    raised = []
    bus.subscribe(raised.append, AlertRaised)
    bus.publish(executed(clock, SELL, realized=-1_600.0))

    alerts = monitor.check_health()

    levels = {a.level for a in alerts}
    assert levels == {WARNING, CRITICAL}
    critical = next(a for a in alerts if a.level == CRITICAL)
    assert critical.halt
    assert [e.alert for e in raised] == alerts


def test_open_alert_is_not_repeated_until_acknowledged(clock):
    bus, monitor = make_monitor(clock, memory_reader=lambda: 1_024.0)
    first = monitor.check_health()
    assert [a.rule for a in first] == ["memory"]
    assert monitor.check_health() == []

    assert monitor.acknowledge(first[0].alert_id) is True
    assert monitor.acknowledge(first[0].alert_id) is False
    assert monitor.active_alerts() == []
    assert len(monitor.check_health()) == 1


def test_acknowledge_unknown_alert():
    alert = Alert(level=WARNING, category="SYSTEM", message="x")
    assert alert.acknowledge() is True
    assert alert.acknowledge() is False
    with pytest.raises(ValueError):
        Alert(level="LOUD", category="SYSTEM", message="x")


def test_acknowledgement_cannot_be_reverted():
    alert = Alert(level=CRITICAL, category="RISK", message="x")
    assert alert.acknowledged is False
    alert.acknowledge()
    with pytest.raises(AttributeError):
        alert.acknowledged = False
    assert alert.acknowledged is True
    assert alert.as_dict()["acknowledged"] is True
    with pytest.raises(TypeError):
        Alert(level=WARNING, category="SYSTEM", message="x", acknowledged=True)


def test_failing_health_checks_warn(clock):
    def raising():
        raise ConnectionError("unreachable")

    _, monitor = make_monitor(clock, health_checks={"api": lambda: False, "db": raising})
    alerts = monitor.check_health()
    assert sorted(a.rule for a in alerts) == ["health:api", "health:db"]
    assert all(a.level == WARNING for a in alerts)


def test_failure_rate_over_trailing_hour(clock):
    bus, monitor = make_monitor(clock)
    for _ in range(3):
        bus.publish(failed(clock))
    clock.advance(2 * 3600)
    bus.publish(executed(clock))
    bus.publish(failed(clock))

    alerts = monitor.check_alerts()
    assert [a.rule for a in alerts] == ["failure_rate"]
    assert "50.0%" in alerts[0].message


def test_idle_alert_after_thirty_minutes(clock):
    _, monitor = make_monitor(clock)
    clock.advance(20 * 60)
    assert monitor.check_alerts() == []
    clock.advance(11 * 60)
    assert [a.rule for a in monitor.check_alerts()] == ["idle"]


def test_external_alerts_are_recorded(clock):
    bus, monitor = make_monitor(clock)
    alert = Alert(level=CRITICAL, category="RISK", message="Risk limit breached: drawdown", halt=True)
    bus.publish(AlertRaised(alert))
    assert monitor.active_alerts() == [alert]


def test_recent_trades_and_report(clock):
    bus, monitor = make_monitor(clock)
    for _ in range(5):
        bus.publish(executed(clock))
    assert len(monitor.recent_trades(3)) == 3
    assert monitor.recent_trades(0) == []

    report = monitor.generate_report()
    assert report.startswith("=== COMPETITION REPORT ===")
    assert "trades: 5 (5 successful, 0 failed)" in report


def test_jsonl_logs_written(clock, tmp_path):
    bus, monitor = make_monitor(clock, settings=MonitorSettings(log_dir=str(tmp_path / "logs")))
    bus.publish(executed(clock))
    monitor.update_metrics()
    monitor.raise_alert(WARNING, "TRADE", "manual check", rule="manual")

    logs = tmp_path / "logs"
    trade = json.loads((logs / "trades.jsonl").read_text(encoding="utf-8").splitlines()[0])
    assert trade["status"] == "SUCCESS"
    metrics = json.loads((logs / "metrics.jsonl").read_text(encoding="utf-8").splitlines()[0])
    assert metrics["total_trades"] == 1
    alert = json.loads((logs / "alerts.jsonl").read_text(encoding="utf-8").splitlines()[0])
    assert alert["rule"] == "manual"


def test_periodic_tasks_start_and_stop(clock):
    settings = MonitorSettings(metrics_interval_seconds=0.01, health_check_interval_seconds=0.01)
    _, monitor = make_monitor(clock, settings=settings)

    async def session():
        monitor.start()
        await asyncio.sleep(0.05)
        return await monitor.stop()

    report = asyncio.run(session())
    assert monitor.last_metrics is not None
    assert "active_alerts: 0" in report


def test_value_at_risk_needs_enough_samples():
    returns = [0.01] * 10
    assert value_at_risk(returns, 10_000.0) == 0.0
    returns = [-0.05] + [0.01] * 19
    # 5% of 20 samples -> index 1 of the sorted returns
    assert value_at_risk(returns, 10_000.0) == pytest.approx(100.0)


def test_sharpe_ratio():
    assert sharpe_ratio([0.01]) == 0.0
    assert sharpe_ratio([0.01, 0.01]) == 0.0
    assert sharpe_ratio([0.0, 0.02]) == pytest.approx(1.0)
