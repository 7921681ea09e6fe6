"""Competition monitor: trade metrics, health checks, alerts and JSONL audit logs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
import asyncio
import json
import resource
import sys
from typing import Any, Callable, Mapping, Optional

from competition_bot.accounting.pnl_tracker import PnLTracker
from competition_bot.accounting.portfolio import PortfolioSnapshot
from competition_bot.config import constants
from competition_bot.config.constants import SELL
from competition_bot.config.settings import MonitorSettings
from competition_bot.events import AlertRaised, EventBus, TradeExecuted, TradeFailed
from competition_bot.logging.metrics import MetricsSnapshot, summarize_metrics
from competition_bot.logging.monitor_log import get_monitor_logger
from competition_bot.monitoring.alerts import CRITICAL, WARNING, Alert

HealthCheck = Callable[[], bool]


def process_memory_mb() -> float:
    """Peak resident set size of this process in MB."""
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes elsewhere.
    if sys.platform == "darwin":
        return rss / (1024.0 * 1024.0)
    return rss / 1024.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TradeRecord:
    """One executed or failed order as seen by the monitor."""

    timestamp: datetime
    order_id: str
    symbol: str
    side: str
    amount: float
    price: float
    quantity: float
    fee: float
    success: bool
    realized_pnl: float
    strategies: tuple[str, ...]
    reason: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.side,
            "amount": self.amount,
            "price": self.price,
            "quantity": self.quantity,
            "fee": self.fee,
            "status": "SUCCESS" if self.success else "FAILED",
            "realized_pnl": self.realized_pnl,
            "strategies": list(self.strategies),
            "reason": self.reason,
        }


class CompetitionMonitor:
    """Observes the trading session through the event bus.

    The monitor never touches the portfolio; it only reads snapshots through
    ``snapshot_source`` and keeps its own trade and alert records. An alert rule
    that is still firing is not raised again until its previous alert has been
    acknowledged.
    """

    def __init__(
        self,
        bus: EventBus,
        initial_balance: float,
        settings: MonitorSettings | None = None,
        snapshot_source: Callable[[], PortfolioSnapshot] | None = None,
        health_checks: Mapping[str, HealthCheck] | None = None,
        memory_reader: Callable[[], float] = process_memory_mb,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.bus = bus
        self.settings = settings or MonitorSettings()
        self.snapshot_source = snapshot_source
        self.health_checks = dict(health_checks or {})
        self.memory_reader = memory_reader
        self.clock = clock
        self.logger = get_monitor_logger()

        self.pnl = PnLTracker(initial_equity=initial_balance)
        self.trades: list[TradeRecord] = []
        self.alerts: list[Alert] = []
        self.total_volume = 0.0
        self.started_at = clock()
        self.last_metrics: Optional[MetricsSnapshot] = None
        self._tasks: list[asyncio.Task] = []

        self.log_dir = Path(self.settings.log_dir) if self.settings.log_dir else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        bus.subscribe(self._on_trade_executed, TradeExecuted)
        bus.subscribe(self._on_trade_failed, TradeFailed)
        bus.subscribe(self._on_alert_raised, AlertRaised)

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start the metrics and health-check timers on the running event loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.settings.metrics_interval_seconds, self.update_metrics)),
            asyncio.create_task(self._every(self.settings.health_check_interval_seconds, self.run_checks)),
        ]
        self.logger.info(
            "monitor started metrics_every=%.0fs health_every=%.0fs log_dir=%s",
            self.settings.metrics_interval_seconds,
            self.settings.health_check_interval_seconds,
            self.log_dir,
        )

    async def stop(self) -> str:
        """Cancel the timers, take a final metrics sample and return the report."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.update_metrics()
        report = self.generate_report()
        self.logger.info("monitor stopped\n%s", report)
        return report

    async def _every(self, interval: float, fn: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                fn()
            except Exception:
                self.logger.exception("monitor task failed task=%s", getattr(fn, "__name__", fn))

    # -- event handlers ------------------------------------------------------

    def _on_trade_executed(self, event: TradeExecuted) -> None:
        fill = event.fill
        record = TradeRecord(
            timestamp=event.timestamp,
            order_id=fill.order_id,
            symbol=fill.symbol,
            side=fill.side,
            amount=fill.notional,
            price=fill.price,
            quantity=fill.quantity,
            fee=fill.fee,
            success=True,
            realized_pnl=event.realized_pnl,
            strategies=event.order.requested_by,
        )
        self.total_volume += fill.notional
        if fill.side == SELL:
            self.pnl.mark_exit(event.realized_pnl, fill.notional, event.order.requested_by)
        self._record_trade(record)

    def _on_trade_failed(self, event: TradeFailed) -> None:
        order = event.order
        record = TradeRecord(
            timestamp=event.timestamp,
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            amount=order.amount,
            price=order.reference_price,
            quantity=0.0,
            fee=0.0,
            success=False,
            realized_pnl=0.0,
            strategies=order.requested_by,
            reason=event.failure.reason,
        )
        self._record_trade(record)

    def _on_alert_raised(self, event: AlertRaised) -> None:
        # Alerts raised elsewhere (e.g. by the trader on a risk breach) join the log.
        alert = event.alert
        if any(a is alert for a in self.alerts):
            return
        self._store_alert(alert)

    def _store_alert(self, alert: Alert) -> None:
        self.alerts.append(alert)
        log = self.logger.critical if alert.level == CRITICAL else self.logger.warning
        log(
            "alert level=%s category=%s rule=%s halt=%s message=%s",
            alert.level,
            alert.category,
            alert.rule,
            alert.halt,
            alert.message,
        )
        self._append_jsonl("alerts.jsonl", alert.as_dict())

    def _record_trade(self, record: TradeRecord) -> None:
        self.trades.append(record)
        self.logger.info(
            "trade recorded status=%s symbol=%s side=%s amount=%.2f pnl=%.2f",
            "SUCCESS" if record.success else "FAILED",
            record.symbol,
            record.side,
            record.amount,
            record.realized_pnl,
        )
        self._append_jsonl("trades.jsonl", record.as_dict())

    # -- metrics and checks --------------------------------------------------

    def update_metrics(self) -> MetricsSnapshot:
        now = self.clock()
        successful = sum(1 for t in self.trades if t.success)
        snapshot = summarize_metrics(
            self.pnl,
            total_trades=len(self.trades),
            successful_trades=successful,
            total_volume=self.total_volume,
            uptime_seconds=(now - self.started_at).total_seconds(),
            now=now,
        )
        self.last_metrics = snapshot
        self._append_jsonl("metrics.jsonl", snapshot.as_dict())
        return snapshot

    def run_checks(self) -> list[Alert]:
        """Run the health checks and the trade-flow alert rules."""
        return self.check_health() + self.check_alerts()

    def check_health(self) -> list[Alert]:
        raised = []
        memory_mb = self.memory_reader()
        if memory_mb > self.settings.memory_warning_mb:
            raised.append(
                self.raise_alert(WARNING, "SYSTEM", f"High memory usage: {memory_mb:.1f}MB", rule="memory")
            )

        for name, check in self.health_checks.items():
            try:
                healthy = bool(check())
                detail = "returned unhealthy"
            except Exception as exc:
                healthy = False
                detail = f"raised {exc}"
            if not healthy:
                raised.append(
                    self.raise_alert(WARNING, "NETWORK", f"Health check {name} failed: {detail}", rule=f"health:{name}")
                )

        drawdown_pct = self.pnl.current_drawdown * 100.0
        if drawdown_pct > constants.DRAWDOWN_WARNING_PCT:
            raised.append(
                self.raise_alert(WARNING, "RISK", f"High drawdown: {drawdown_pct:.2f}%", rule="drawdown_warning")
            )
        if drawdown_pct > constants.DRAWDOWN_CRITICAL_PCT:
            raised.append(
                self.raise_alert(
                    CRITICAL,
                    "RISK",
                    f"Critical drawdown reached: {drawdown_pct:.2f}%",
                    rule="drawdown_critical",
                    halt=True,
                    data={"action": "STOP_TRADING"},
                )
            )
        return [a for a in raised if a is not None]

    def check_alerts(self) -> list[Alert]:
        raised = []
        now = self.clock()

        idle_window = timedelta(seconds=constants.IDLE_ALERT_SECONDS)
        uptime = now - self.started_at
        recent = [t for t in self.trades if t.timestamp > now - idle_window]
        if not recent and uptime > idle_window:
            raised.append(
                self.raise_alert(
                    WARNING,
                    "TRADE",
                    f"No trades executed in the last {constants.IDLE_ALERT_SECONDS // 60} minutes",
                    rule="idle",
                )
            )

        last_hour = [t for t in self.trades if t.timestamp > now - timedelta(hours=1)]
        if last_hour:
            failed = sum(1 for t in last_hour if not t.success)
            rate = failed / len(last_hour) * 100.0
            if rate > constants.FAILURE_RATE_WARNING_PCT:
                raised.append(
                    self.raise_alert(WARNING, "SYSTEM", f"High error rate: {rate:.1f}%", rule="failure_rate")
                )
        return [a for a in raised if a is not None]

    # -- alerts --------------------------------------------------------------

    def raise_alert(
        self,
        level: str,
        category: str,
        message: str,
        rule: str = "",
        halt: bool = False,
        data: dict[str, Any] | None = None,
    ) -> Optional[Alert]:
        """Record and publish an alert; returns None if ``rule`` already has an open alert."""
        if rule and any(a.rule == rule and not a.acknowledged for a in self.alerts):
            return None
        alert = Alert(
            level=level,
            category=category,
            message=message,
            rule=rule,
            halt=halt,
            data=dict(data or {}),
            timestamp=self.clock(),
        )
        self._store_alert(alert)
        self.bus.publish(AlertRaised(alert))
        return alert

    def acknowledge(self, alert_id: str) -> bool:
        for alert in self.alerts:
            if alert.alert_id == alert_id:
                acknowledged = alert.acknowledge()
                if acknowledged:
                    self.logger.info("alert acknowledged alert_id=%s", alert_id)
                return acknowledged
        return False

    def active_alerts(self) -> list[Alert]:
        return [a for a in self.alerts if not a.acknowledged]

    def recent_trades(self, n: int = 10) -> list[TradeRecord]:
        if n <= 0:
            return []
        return self.trades[-n:]

    def generate_report(self) -> str:
        m = self.last_metrics or self.update_metrics()
        hours, rem = divmod(int(m.uptime_seconds), 3600)
        lines = [
            "=== COMPETITION REPORT ===",
            f"runtime: {hours}h {rem // 60}m",
            f"realized_balance: {m.current_balance:.2f}",
            f"total_pnl: {m.total_pnl:+.2f} ({m.total_pnl_pct:.2f}%)",
            f"max_drawdown: {m.max_drawdown_pct:.2f}%",
            f"win_rate: {m.win_rate:.1f}%",
            f"trades: {m.total_trades} ({m.successful_trades} successful, {m.failed_trades} failed)",
            f"trades_per_hour: {m.trades_per_hour:.1f}",
            f"total_volume: {m.total_volume:.2f}",
            f"profit_factor: {m.profit_factor:.2f}",
            f"sharpe_ratio: {m.sharpe_ratio:.3f}",
            f"value_at_risk: {m.value_at_risk:.2f}",
        ]
        if self.snapshot_source is not None:
            snap = self.snapshot_source()
            lines.append(f"portfolio_value: {snap.total_value:.2f} (drawdown {snap.drawdown * 100:.2f}%)")
        lines.append("strategies:")
        for name, perf in sorted(m.strategy_performance.items()):
            lines.append(
                f"  {name}: {int(perf['trades'])} trades, {perf['pnl']:.2f} pnl, {perf['win_rate']:.1f}% wins"
            )
        lines.append(f"active_alerts: {len(self.active_alerts())}")
        return "\n".join(lines)

    def _append_jsonl(self, filename: str, payload: dict[str, Any]) -> None:
        if self.log_dir is None:
            return
        try:
            with open(self.log_dir / filename, "a", encoding="utf-8") as f:
                f.write(json.dumps(payload, default=str) + "\n")
        except OSError as exc:
            self.logger.error("failed to write %s error=%s", filename, exc)
