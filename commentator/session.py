"""Tracking sessions: one tracked pool per chat between /start and /end."""
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from commentator.chart import render_price_chart
from commentator.commentary import build_update_message, exciting_comment
from commentator.config import config
from commentator.market_data import GeckoTerminalClient, PoolSnapshot
from commentator.market_series import RollingMarketSeries


@dataclass(frozen=True)
class PnL:
    """Simulated profit/loss of a fixed USD position opened at the entry price."""
    entry_price: float
    current_price: float
    position_usd: float
    pnl_pct: float
    pnl_usd: float

    @property
    def value_usd(self) -> float:
        return self.position_usd + self.pnl_usd


@dataclass(frozen=True)
class MarketUpdate:
    """Result of one poll: the fetched snapshot, P&L and rendered message text."""
    snapshot: PoolSnapshot
    pnl: PnL
    text: str


@dataclass(frozen=True)
class SessionSummary:
    """End-of-session figures (price fields are None if no poll succeeded)."""
    address: str
    name: Optional[str]
    started_at: datetime
    updates: int
    entry_price: Optional[float]
    final_price: Optional[float]
    peak_price: Optional[float]
    low_price: Optional[float]
    pnl: Optional[PnL]


def compute_pnl(entry_price: float, current_price: float, position_usd: float) -> PnL:
    """P&L of ``position_usd`` bought at ``entry_price`` and marked at ``current_price``."""
    pnl_pct = (current_price - entry_price) / entry_price * 100
    return PnL(
        entry_price=entry_price,
        current_price=current_price,
        position_usd=position_usd,
        pnl_pct=pnl_pct,
        pnl_usd=position_usd * pnl_pct / 100,
    )


class TrackingSession:
    """Polls one pool, feeds its rolling series and produces chat updates."""

    def __init__(
        self,
        address: str,
        chat_id: int,
        client: Optional[GeckoTerminalClient] = None,
        capacity: Optional[int] = None,
        position_usd: Optional[float] = None,
        strong_threshold: Optional[float] = None,
        move_threshold: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize a session; nothing is fetched until poll().

        Args:
            address: Pool address on the configured network
            chat_id: Chat that receives updates
            client: Market data client (defaults to a GeckoTerminalClient)
            capacity: Price history size (defaults to config)
            position_usd: Simulated position size for P&L (defaults to config)
            strong_threshold: Percent change treated as extreme (defaults to config)
            move_threshold: Percent change treated as a move (defaults to config)
            rng: Random source for commentary selection
        """
        address = (address or "").strip()
        if not address:
            raise ValueError("Pool address must be provided")
        self.address = address
        self.chat_id = chat_id
        self.client = client or GeckoTerminalClient()
        self.series = RollingMarketSeries(capacity or config.history_capacity)
        self.position_usd = position_usd if position_usd is not None else config.simulated_position_usd
        self.strong_threshold = strong_threshold if strong_threshold is not None else config.extreme_move_pct
        self.move_threshold = move_threshold if move_threshold is not None else config.move_pct
        self.rng = rng

        self.started_at = datetime.now(timezone.utc)
        self.name: Optional[str] = None
        self.entry_price: Optional[float] = None
        self.peak_price: Optional[float] = None
        self.low_price: Optional[float] = None
        self.last_price: Optional[float] = None
        self.updates = 0
        self.closed = False
        self._lock = threading.Lock()

    def simulated_pnl(self, price: float) -> PnL:
        if self.entry_price is None:
            raise ValueError("No entry price yet; poll() has not succeeded")
        return compute_pnl(self.entry_price, price, self.position_usd)

    def poll(self, now: Optional[datetime] = None) -> Optional[MarketUpdate]:
        """Fetch the pool, record its price and build the update message.

        Fetch errors propagate; the series is only touched after a successful fetch.
        Returns None without recording if the session is closed, including when
        close() lands while the fetch is in flight.
        """
        if self.closed:
            return None
        snapshot = self.client.fetch_pool(self.address)
        now = now or datetime.now(timezone.utc)

        with self._lock:
            if self.closed:
                logger.debug(f"Session {self.address} (chat {self.chat_id}) closed during fetch; dropping price")
                return None
            self.series.record(now, snapshot.price)
            self.name = snapshot.name
            if self.entry_price is None:
                self.entry_price = snapshot.price
                logger.info(f"Session {self.address} (chat {self.chat_id}): entry price ${snapshot.price}")
            self.peak_price = snapshot.price if self.peak_price is None else max(self.peak_price, snapshot.price)
            self.low_price = snapshot.price if self.low_price is None else min(self.low_price, snapshot.price)
            self.last_price = snapshot.price
            self.updates += 1

        pnl = self.simulated_pnl(snapshot.price)
        comment = exciting_comment(snapshot, self.strong_threshold, self.move_threshold, self.rng)
        text = build_update_message(snapshot, comment, pnl)
        logger.debug(
            f"Session {self.address}: update #{self.updates}, movement={self.series.latest_movement}, "
            f"pnl={pnl.pnl_pct:+.2f}%"
        )
        return MarketUpdate(snapshot=snapshot, pnl=pnl, text=text)

    def render_chart(self, width: Optional[int] = None, height: Optional[int] = None) -> bytes:
        observations, movements = self.series.snapshot()
        return render_price_chart(
            observations,
            movements,
            title=self.name or self.address,
            width=width or config.chart_width,
            height=height or config.chart_height,
        )

    def summary(self) -> SessionSummary:
        """Session figures; still available after close()."""
        final_price = self.last_price
        pnl = self.simulated_pnl(final_price) if final_price is not None and self.entry_price else None
        return SessionSummary(
            address=self.address,
            name=self.name,
            started_at=self.started_at,
            updates=self.updates,
            entry_price=self.entry_price,
            final_price=final_price,
            peak_price=self.peak_price,
            low_price=self.low_price,
            pnl=pnl,
        )

    def close(self) -> None:
        """Discard the price history and stop recording. Safe to call more than once."""
        with self._lock:
            self.closed = True
            self.series.reset()


class SessionRegistry:
    """Holds at most one TrackingSession per chat."""

    def __init__(self):
        self._sessions: Dict[int, TrackingSession] = {}

    def start(self, address: str, chat_id: int, **kwargs) -> TrackingSession:
        """Create a session for the chat, closing any session it replaces."""
        session = TrackingSession(address, chat_id, **kwargs)
        previous = self._sessions.get(chat_id)
        if previous is not None:
            logger.info(f"Chat {chat_id}: replacing session {previous.address} with {address}")
            previous.close()
        self._sessions[chat_id] = session
        return session

    def get(self, chat_id: int) -> Optional[TrackingSession]:
        return self._sessions.get(chat_id)

    def end(self, chat_id: int) -> Optional[TrackingSession]:
        """Remove and close the chat's session; returns it, or None if idle."""
        session = self._sessions.pop(chat_id, None)
        if session is not None:
            session.close()
        return session

    def active(self) -> List[TrackingSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
