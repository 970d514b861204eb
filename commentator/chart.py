"""Price chart rendering for commentary updates.

Figures are built with ``matplotlib.figure.Figure`` rather than pyplot so
charts for several chats can render concurrently in executor threads.
"""
import io
from typing import Sequence

import matplotlib.dates as mdates
from matplotlib.collections import LineCollection
from matplotlib.figure import Figure
from matplotlib.ticker import FuncFormatter

from commentator.commentary import format_price
from commentator.market_series import Movement, Observation

BACKGROUND = "#000000"
GRID = (1.0, 1.0, 1.0, 0.1)
MOVEMENT_COLORS = {
    Movement.UP: "#00ff00",
    Movement.DOWN: "#ff3333",
    Movement.FLAT: "#aaaaaa",
}
DPI = 100


def render_price_chart(
    observations: Sequence[Observation],
    movements: Sequence[Movement],
    title: str,
    width: int = 800,
    height: int = 400,
) -> bytes:
    """Render a price line chart as PNG bytes.

    Segment ``i`` (observation i to i+1) is coloured by ``movements[i]``.

    Args:
        observations: Time-ordered price observations
        movements: One movement per consecutive pair of observations
        title: Chart title, usually the pool name
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        PNG image bytes

    Raises:
        ValueError: If there is nothing to draw or the sequences are misaligned
    """
    if not observations:
        raise ValueError("Cannot render a chart without observations")
    if len(movements) != len(observations) - 1:
        raise ValueError(
            f"Expected {len(observations) - 1} movements for {len(observations)} observations, got {len(movements)}"
        )

    times = [mdates.date2num(o.timestamp) for o in observations]
    prices = [o.price for o in observations]

    fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI, facecolor=BACKGROUND)
    ax = fig.subplots()
    ax.set_facecolor(BACKGROUND)

    if len(observations) == 1:
        ax.plot(times, prices, "o", color=MOVEMENT_COLORS[Movement.FLAT], markersize=4)
        # Single point: pad the x range so the axis is not degenerate
        ax.set_xlim(times[0] - 1 / 1440, times[0] + 1 / 1440)
    else:
        segments = [
            [(times[i], prices[i]), (times[i + 1], prices[i + 1])]
            for i in range(len(movements))
        ]
        colors = [MOVEMENT_COLORS[m] for m in movements]
        ax.add_collection(LineCollection(segments, colors=colors, linewidths=2))
        ax.scatter(times, prices, s=6, color=[MOVEMENT_COLORS[Movement.FLAT]] + colors, zorder=3)
        ax.autoscale_view()

    ax.set_title(f"{title} Price History", color="white", fontsize=14)
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%H:%M"))
    ax.yaxis.set_major_formatter(FuncFormatter(lambda value, _pos: format_price(value)))
    ax.tick_params(colors="white", labelsize=8)
    ax.tick_params(axis="x", labelrotation=45)
    ax.grid(color=GRID)
    for spine in ax.spines.values():
        spine.set_color(GRID)

    fig.tight_layout(pad=1.0)
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=DPI, facecolor=BACKGROUND)
    return buf.getvalue()
