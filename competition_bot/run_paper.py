"""Entry point for running a paper competition session on synthetic data."""

from __future__ import annotations

import asyncio
from pathlib import Path
import signal
import sys

from competition_bot.config.settings import TraderConfig
from competition_bot.data.market_feed import SyntheticMarketFeed
from competition_bot.data.venue_quotes import SimulatedVenueQuotes
from competition_bot.engine import CompetitionTrader
from competition_bot.events import EventBus
from competition_bot.execution.paper_broker import PaperExecutor
from competition_bot.monitoring.monitor import CompetitionMonitor

DEFAULT_CONFIG = Path(__file__).parent / "config" / "settings.yaml"


def build_session(cfg: TraderConfig) -> tuple[CompetitionTrader, CompetitionMonitor]:
    """Wire the synthetic feed, paper executor, trader and monitor on one bus."""
    bus = EventBus()
    feed = SyntheticMarketFeed(cfg.trading_pairs, seed=cfg.seed)
    feed.warmup(cfg.history_size)
    trader = CompetitionTrader(
        cfg,
        feed=feed,
        executor=PaperExecutor(cfg.execution, seed=cfg.seed),
        bus=bus,
        quote_source=SimulatedVenueQuotes(seed=cfg.seed),
    )
    monitor = CompetitionMonitor(
        bus,
        initial_balance=cfg.initial_balance,
        settings=cfg.monitor,
        snapshot_source=trader.snapshot,
    )
    return trader, monitor


async def run_session(cfg: TraderConfig) -> None:
    trader, monitor = build_session(cfg)

    def shutdown_handler(sig, frame):
        print("\nGraceful shutdown initiated...")
        trader.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    monitor.start()
    try:
        snapshot = await trader.run()
    finally:
        report = await monitor.stop()
    print(report)
    print(f"final value: {snapshot.total_value:.2f} pnl: {snapshot.pnl:+.2f} ({snapshot.pnl_pct:.2f}%)")
    risk = trader.risk_report()
    print(f"risk health: {risk['health']}")
    for name, loss in risk["stress_test"].items():
        print(f"stress {name}: {loss * 100:.2f}% loss")


def main() -> None:
    cfg_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_CONFIG
    cfg = TraderConfig.from_yaml(cfg_path)
    print("Paper trading started. Press CTRL+C to stop.")
    asyncio.run(run_session(cfg))
    print("Paper trading stopped cleanly.")


if __name__ == "__main__":
    main()
