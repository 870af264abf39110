"""Small indicator helpers used by the strategies and by position sizing."""

from __future__ import annotations

from typing import List, Sequence

from ..execution.models import Bar


def ema(values: Sequence[float], period: int) -> List[float]:
    """Exponential moving average seeded with the first value."""
    if not values:
        return []
    k = 2.0 / (period + 1)
    out = [float(values[0])]
    for v in values[1:]:
        out.append((v - out[-1]) * k + out[-1])
    return out


def rsi(closes: Sequence[float], period: int) -> float:
    """Simple-average RSI over the last `period` changes; 50 without enough data."""
    if len(closes) < period + 1:
        return 50.0
    gain = loss = 0.0
    for i in range(len(closes) - period, len(closes)):
        diff = closes[i] - closes[i - 1]
        if diff > 0:
            gain += diff
        else:
            loss -= diff
    if loss == 0:
        return 100.0
    rs = gain / loss
    return 100.0 - 100.0 / (1.0 + rs)


def true_ranges(bars: Sequence[Bar]) -> List[float]:
    """True range per bar; the first bar uses its high-low range."""
    out: List[float] = []
    prev_close = None
    for b in bars:
        if prev_close is None:
            out.append(b.high - b.low)
        else:
            out.append(max(b.high - b.low, abs(b.high - prev_close), abs(b.low - prev_close)))
        prev_close = b.close
    return out


def average_true_range(bars: Sequence[Bar], period: int) -> float:
    """EMA of the last `period` true ranges (fewer when history is short)."""
    tr = true_ranges(bars)
    if not tr:
        return 0.0
    return ema(tr[-period:], period)[-1]
