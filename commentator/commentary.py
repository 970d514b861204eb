"""Sports-commentator style update text for tracked pools.

Comments are grouped into one pool per TrendBucket; which comment is used is
a uniform random pick so callers can pass a seeded ``random.Random``.
"""
import html
import math
import random
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from commentator.market_data import CHANGE_WINDOWS, PoolSnapshot
from commentator.market_series import (
    DEFAULT_MOVE_THRESHOLD,
    DEFAULT_STRONG_THRESHOLD,
    RollingMarketSeries,
    TrendBucket,
)

if TYPE_CHECKING:
    from commentator.session import PnL


POSITIVE_COMMENTS = [
    "BOOM! What a move folks! This is the kind of action we live for! 🚀",
    "They're on FIRE! You can't teach this kind of momentum! 🔥",
    "Ladies and gentlemen, we are witnessing GREATNESS! 👑",
    "This is what champions are made of! Absolutely ELECTRIC performance! ⚡",
    "They've done their homework and it's PAYING OFF! 📚",
    "The crowd is going WILD! Can you feel the energy?! 🎉",
    "That's what I call EXECUTING THE GAMEPLAN! 📋",
    "They're making it look EASY out there! 💪",
    "This is a MASTERCLASS in price action! 📈",
    "They came to PLAY today, folks! 🎯",
    "UNSTOPPABLE! They're in a league of their own! 🏆",
    "This is TEXTBOOK execution! Beautiful to watch! 📖",
    "They're COOKING with gas now! 🔥",
    "The momentum is UNDENIABLE! 🌊",
    "What a SPECTACULAR display of strength! 💪",
]

NEUTRAL_COMMENTS = [
    "We've got ourselves a real CHESS MATCH here, folks! ♟️",
    "Both bulls and bears showing RESPECT for each other! 🤝",
    "This is anyone's game right now! 🎲",
    "They're feeling each other out, looking for an opening! 👀",
    "The tension is PALPABLE! 😤",
    "This is what we call a STRATEGIC battle! 🧠",
    "They're playing the long game here, folks! ⏳",
    "Every move counts in this situation! ⚖️",
    "We're seeing some VETERAN moves here! 🎯",
    "This is a CLASSIC matchup unfolding! 🏛️",
    "The plot thickens! What a fascinating development! 🎭",
    "Both sides showing tremendous DISCIPLINE! 📊",
    "This is a TEXTBOOK trading range! 📐",
    "The market is taking a breather, but stay tuned! ⏸️",
    "We're at a crucial DECISION POINT! 🔄",
]

NEGATIVE_COMMENTS = [
    "OUCH! That's gonna leave a mark! 🤕",
    "They're on the ropes, but don't count them out yet! 🥊",
    "This is a TEST OF CHARACTER right here! 💪",
    "They're in UNFAMILIAR TERRITORY! Can they adjust? 🗺️",
    "This is where champions show their RESILIENCE! 🛡️",
    "They're taking some HEAVY HITS, but still standing! 🥊",
    "This is a GUT CHECK moment! 😤",
    "They need to WEATHER THE STORM! ⛈️",
    "Time to dig DEEP and show what they're made of! ⛏️",
    "This is where LEGENDS are born, folks! 🌟",
    "They're down but not out! Never count out a champion! 👊",
    "This is when you earn your stripes! 🦓",
    "Sometimes you need to take a step back to leap forward! 🦘",
    "They're in survival mode, but that's when they're most dangerous! 🐯",
    "This is CHARACTER BUILDING time! 🏗️",
]

EXTREME_COMMENTS = [
    "I CAN'T BELIEVE WHAT I'M SEEING! This is UNPRECEDENTED! 🤯",
    "HOLY SMOKES! This will go down in the history books! 📚",
    "GREAT GOOGLY MOOGLY! Have you ever seen anything like this?! 😱",
    "STOP THE PRESSES! This is one for the ages! 🗞️",
    "MY WORD! This is why you never leave your seat, folks! 💺",
]

COMMENT_POOLS: Dict[TrendBucket, List[str]] = {
    TrendBucket.EXTREME: EXTREME_COMMENTS,
    TrendBucket.POSITIVE: POSITIVE_COMMENTS,
    TrendBucket.NEGATIVE: NEGATIVE_COMMENTS,
    TrendBucket.NEUTRAL: NEUTRAL_COMMENTS,
}

COMMENTARY_WINDOW = "5m"


def pick_comment(bucket: TrendBucket, rng: Optional[random.Random] = None) -> str:
    """Pick a comment from the bucket's pool uniformly at random."""
    return (rng or random).choice(COMMENT_POOLS[bucket])


def exciting_comment(
    snapshot: PoolSnapshot,
    strong_threshold: float = DEFAULT_STRONG_THRESHOLD,
    move_threshold: float = DEFAULT_MOVE_THRESHOLD,
    rng: Optional[random.Random] = None,
) -> str:
    """Comment on the pool's short-window move (5m change, missing treated as 0)."""
    bucket = RollingMarketSeries.classify_trend(
        snapshot.change_pct(COMMENTARY_WINDOW), strong_threshold, move_threshold
    )
    return pick_comment(bucket, rng)


def format_usd(value: Optional[float]) -> str:
    """Format a USD amount with 2-6 decimals, e.g. $1,234.50 or $0.000123."""
    if value is None:
        return "n/a"
    text = f"{value:,.6f}".rstrip("0")
    whole, _, decimals = text.partition(".")
    decimals = decimals.ljust(2, "0")
    sign = "-" if whole.startswith("-") else ""
    return f"{sign}${whole.lstrip('-')}.{decimals}"


def format_price(value: Optional[float], significant: int = 4) -> str:
    """Format a token price; below $0.000001 keep ``significant`` figures instead of 6 decimals."""
    if value is None or value == 0 or not math.isfinite(value) or abs(value) >= 1e-6:
        return format_usd(value)
    decimals = significant - 1 - math.floor(math.log10(abs(value)))
    text = f"{abs(value):.{decimals}f}".rstrip("0")
    sign = "-" if value < 0 else ""
    return f"{sign}${text}"


def format_percent(value: Optional[str]) -> str:
    """Format an API percent string ("1.2%", "1.2") for display; missing -> 0%."""
    if value is None or str(value).strip() == "":
        return "0%"
    return str(value).strip().replace("%", "") + "%"


def _format_count(value: Optional[int]) -> str:
    return f"{value:,}" if value is not None else "n/a"


def _format_signed_usd(value: float) -> str:
    return f"+{format_usd(value)}" if value >= 0 else format_usd(value)


def format_pnl_lines(pnl: "PnL") -> List[str]:
    """Lines describing a simulated position's P&L."""
    return [
        f"• Entry: {format_price(pnl.entry_price)}",
        f"• Position: {format_usd(pnl.position_usd)} → {format_usd(pnl.value_usd)}",
        f"• P&amp;L: {_format_signed_usd(pnl.pnl_usd)} ({pnl.pnl_pct:+.2f}%)",
    ]


def build_update_message(
    snapshot: PoolSnapshot,
    comment: str,
    pnl: Optional["PnL"] = None,
    windows: Sequence[str] = CHANGE_WINDOWS,
) -> str:
    """Build the Telegram HTML body of one market update."""
    name = html.escape(snapshot.name, quote=False)
    lines = [
        f"🎙️ <b>LIVE CRYPTO UPDATE FOR {name}</b> 🎙️",
        "",
        f"💰 <b>Price</b>: {format_price(snapshot.price)}",
        "📊 <b>Price Changes</b>:",
    ]
    lines.extend(f"• {w}: {format_percent(snapshot.changes.get(w))}" for w in windows)

    lines += [
        "",
        "📈 <b>Trading Activity (24h)</b>:",
        f"• Volume: {format_usd(snapshot.volume_24h)}",
        f"• Swaps: {_format_count(snapshot.swap_count_24h)}",
        f"• Buyers: {_format_count(snapshot.buyers_24h)}",
        f"• Sellers: {_format_count(snapshot.sellers_24h)}",
        "",
        "💎 <b>Pool Metrics</b>:",
        f"• FDV: {format_usd(snapshot.fdv)}",
        f"• Liquidity: {format_usd(snapshot.reserve_usd)}",
        f"• GT Score: {snapshot.gt_score:.2f}/100" if snapshot.gt_score is not None else "• GT Score: n/a",
    ]

    if snapshot.sentiment_up_pct is not None:
        lines += [
            "",
            f"🗳️ <b>Sentiment</b>: {snapshot.sentiment_up_pct:.1f}% Bullish "
            f"({_format_count(snapshot.sentiment_votes)} votes)",
        ]

    if pnl is not None:
        lines += ["", "💼 <b>Simulated Position</b>:"]
        lines += format_pnl_lines(pnl)

    lines += ["", html.escape(comment, quote=False)]
    return "\n".join(lines)
