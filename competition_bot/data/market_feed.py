"""Market samples, rolling history and the feeds that produce them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import asyncio
import json
import logging
import math
import random
from collections import deque
from typing import Deque, Iterable, List, Mapping, Optional

import websockets
from websockets.exceptions import WebSocketException

from competition_bot.config.constants import DEFAULT_HISTORY_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSample:
    """One price/volume observation for a symbol."""

    symbol: str
    price: float
    volume: float
    price_change_24h: float
    timestamp: datetime

    def __post_init__(self) -> None:
        if not self.price > 0:
            raise ValueError(f"price must be > 0, got {self.price}")
        if self.volume < 0:
            raise ValueError(f"volume must be >= 0, got {self.volume}")


class MarketHistory:
    """Bounded per-symbol sample windows; oldest samples are evicted first."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._windows: dict[str, Deque[MarketSample]] = {}

    def append(self, sample: MarketSample) -> None:
        window = self._windows.get(sample.symbol)
        if window is None:
            window = deque(maxlen=self.max_size)
            self._windows[sample.symbol] = window
        window.append(sample)

    def extend(self, samples: Iterable[MarketSample]) -> None:
        for sample in samples:
            self.append(sample)

    def snapshot(self, symbol: str) -> tuple[MarketSample, ...]:
        """Immutable copy of the window for ``symbol``, oldest first."""
        return tuple(self._windows.get(symbol, ()))


class MarketFeed:
    """Interface the trader uses to read market data."""

    def get_latest(self, symbol: str) -> Optional[MarketSample]:
        raise NotImplementedError

    def get_history(self, symbol: str, n: int) -> List[MarketSample]:
        raise NotImplementedError


_START_PRICES = {
    "WETH": 2000.0,
    "WBTC": 50000.0,
    "UNI": 8.0,
    "LINK": 15.0,
    "AAVE": 90.0,
}


class SyntheticMarketFeed(MarketFeed):
    """Deterministic random-walk feed suitable for paper strategy validation.

    Every ``get_latest`` call advances the symbol by one step.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        seed: int = 42,
        start_prices: Mapping[str, float] | None = None,
        step: timedelta = timedelta(seconds=10),
        max_history: int = 500,
    ) -> None:
        self._rng = random.Random(seed)
        self._step = step
        start_prices = dict(_START_PRICES, **(start_prices or {}))
        self._ts = datetime.now(timezone.utc).replace(microsecond=0)
        self._prices: dict[str, float] = {}
        self._open_prices: dict[str, float] = {}
        self._history: dict[str, Deque[MarketSample]] = {}
        self._steps: dict[str, int] = {}
        for symbol in symbols:
            price = float(start_prices.get(symbol, 100.0))
            self._prices[symbol] = price
            self._open_prices[symbol] = price
            self._history[symbol] = deque(maxlen=max_history)
            self._steps[symbol] = 0

    def next_sample(self, symbol: str) -> MarketSample:
        """Generate the next sample with bounded noise around a mild sinusoid."""
        if symbol not in self._prices:
            raise KeyError(symbol)
        history = self._history[symbol]
        ts = self._ts + self._step * self._steps[symbol]
        self._steps[symbol] += 1
        wave = math.sin(ts.timestamp() / 2400.0) * 0.0008
        noise = self._rng.uniform(-0.004, 0.004)
        price = max(1e-6, self._prices[symbol] * (1.0 + wave + noise))
        volume = self._rng.uniform(0.5, 1.5) * 1_000_000
        change = (price - self._open_prices[symbol]) / self._open_prices[symbol]

        sample = MarketSample(symbol=symbol, price=price, volume=volume, price_change_24h=change, timestamp=ts)
        self._prices[symbol] = price
        history.append(sample)
        return sample

    def warmup(self, n: int) -> None:
        """Generate initial samples for every symbol for indicator warm-up."""
        for symbol in self._prices:
            for _ in range(n):
                self.next_sample(symbol)

    def get_latest(self, symbol: str) -> Optional[MarketSample]:
        if symbol not in self._prices:
            return None
        return self.next_sample(symbol)

    def get_history(self, symbol: str, n: int) -> List[MarketSample]:
        history = self._history.get(symbol)
        if not history or n <= 0:
            return []
        return list(history)[-n:]


class LiveMarketFeed(MarketFeed):
    """Live Binance.US 24h ticker stream for a set of symbols."""

    BINANCE_WS_URL = "wss://stream.binance.us:9443/stream"
    SYMBOL_STREAMS = {"WETH": "ethusdt", "WBTC": "btcusdt"}

    def __init__(
        self,
        symbols: Iterable[str],
        max_samples: int = 500,
        reconnect_delay: float = 5.0,
        symbol_streams: Mapping[str, str] | None = None,
    ) -> None:
        streams = dict(self.SYMBOL_STREAMS, **(symbol_streams or {}))
        self._stream_to_symbol = {streams.get(s, f"{s.lower()}usdt"): s for s in symbols}
        self.reconnect_delay = reconnect_delay
        self._samples: dict[str, Deque[MarketSample]] = {
            s: deque(maxlen=max_samples) for s in self._stream_to_symbol.values()
        }
        self._running = False

    @property
    def url(self) -> str:
        streams = "/".join(f"{stream}@ticker" for stream in self._stream_to_symbol)
        return f"{self.BINANCE_WS_URL}?streams={streams}"

    async def connect(self) -> None:
        """Consume the ticker stream until ``stop`` is called, reconnecting on errors."""
        self._running = True
        while self._running:
            try:
                async with websockets.connect(self.url) as ws:
                    logger.info("market feed connected streams=%d", len(self._stream_to_symbol))
                    async for message in ws:
                        self._handle_message(message)
                        if not self._running:
                            break
            except (OSError, WebSocketException) as exc:
                logger.warning("market feed disconnected error=%s retry_in=%.1fs", exc, self.reconnect_delay)
                if self._running:
                    await asyncio.sleep(self.reconnect_delay)

    def stop(self) -> None:
        self._running = False

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            msg = json.loads(raw)
        except ValueError as exc:
            logger.warning("market feed dropped frame error=%s", exc)
            return
        if not isinstance(msg, dict):
            logger.warning("market feed dropped frame type=%s", type(msg).__name__)
            return
        stream = str(msg.get("stream", "")).split("@")[0]
        data = msg.get("data") or {}
        symbol = self._stream_to_symbol.get(stream)
        if symbol is None:
            return
        try:
            sample = MarketSample(
                symbol=symbol,
                price=float(data["c"]),
                volume=float(data["q"]),
                price_change_24h=float(data["P"]) / 100.0,
                timestamp=datetime.fromtimestamp(int(data["E"]) / 1000, tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("market feed dropped message stream=%s error=%s", stream, exc)
            return
        self._samples[symbol].append(sample)

    def get_latest(self, symbol: str) -> Optional[MarketSample]:
        samples = self._samples.get(symbol)
        if not samples:
            return None
        return samples[-1]

    def get_history(self, symbol: str, n: int) -> List[MarketSample]:
        samples = self._samples.get(symbol)
        if not samples or n <= 0:
            return []
        return list(samples)[-n:]
