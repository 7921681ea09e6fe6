"""Entry point for paper trading against the live Binance.US ticker stream."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
import signal
import sys

from competition_bot.config.settings import TraderConfig
from competition_bot.data.market_feed import LiveMarketFeed
from competition_bot.data.venue_quotes import SimulatedVenueQuotes
from competition_bot.engine import CompetitionTrader
from competition_bot.events import EventBus
from competition_bot.execution.paper_broker import PaperExecutor
from competition_bot.monitoring.monitor import CompetitionMonitor

DEFAULT_CONFIG = Path(__file__).parent / "config" / "settings.yaml"
FIRST_TICK_TIMEOUT_SECONDS = 60.0


async def wait_for_data(feed: LiveMarketFeed, symbols, timeout: float) -> bool:
    """Wait until every symbol has at least one sample or ``timeout`` passes."""
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if all(feed.get_latest(s) is not None for s in symbols):
            return True
        await asyncio.sleep(1.0)
    return False


async def run_session(cfg: TraderConfig) -> None:
    bus = EventBus()
    feed = LiveMarketFeed(cfg.trading_pairs, max_samples=max(500, cfg.history_size))
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

    def shutdown_handler(sig, frame):
        print("\nGraceful shutdown initiated...")
        trader.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    ws_task = asyncio.create_task(feed.connect())
    monitor.start()
    try:
        if not await wait_for_data(feed, cfg.trading_pairs, FIRST_TICK_TIMEOUT_SECONDS):
            print("Not every pair has data yet; symbols without data are skipped until it arrives.")
        snapshot = await trader.run()
    finally:
        feed.stop()
        ws_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ws_task
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
    print("=== Live paper trading started ===")
    asyncio.run(run_session(cfg))
    print("Live paper trading stopped cleanly.")


if __name__ == "__main__":
    main()
