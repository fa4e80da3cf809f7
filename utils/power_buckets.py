"""
Maps the server-supplied winning power (1-100) onto the symbol catalog.
"""
import math
from dataclasses import dataclass
from typing import Sequence

from utils.game_config import SYMBOLS

MIN_POWER = 1
MAX_POWER = 100


@dataclass(frozen=True)
class Bucket:
    """A contiguous slice of the power scale owned by one symbol."""
    symbol: str
    min_power: int
    max_power: int
    center: int

    def contains(self, power: int) -> bool:
        return self.min_power <= power <= self.max_power


def round_half_up(value: float) -> int:
    """Rounds .5 away from zero for positive values, unlike round()."""
    return int(math.floor(value + 0.5))


def clamp_power(power, low: int = MIN_POWER, high: int = MAX_POWER) -> int:
    """Clamps any numeric power into [low, high]; None counts as zero."""
    if power is None:
        power = 0
    return max(low, min(high, round_half_up(float(power))))


def build_buckets(symbols: Sequence[str]) -> tuple:
    """Partitions [1, 100] into one bucket per symbol."""
    if not symbols:
        raise ValueError("At least one symbol is required to build buckets.")

    count = len(symbols)
    buckets = []
    last = 0
    for i, symbol in enumerate(symbols):
        upper = round_half_up((i + 1) / count * MAX_POWER)
        lower = last + 1
        # Tiny catalogs are fine; huge ones could produce empty slices.
        upper = max(upper, lower)
        last = upper
        buckets.append([symbol, lower, upper])

    buckets[-1][2] = MAX_POWER
    return tuple(
        Bucket(symbol, lower, upper, round_half_up((lower + upper) / 2))
        for symbol, lower, upper in buckets
    )


class PowerBucketer:
    """Answers which bucket (and therefore which symbol) a power value lands in."""

    def __init__(self, symbols: Sequence[str] = SYMBOLS):
        self.symbols = tuple(symbols)
        self.buckets = build_buckets(self.symbols)

    def bucket_for(self, power) -> Bucket:
        """Returns the bucket whose range contains the clamped power."""
        power = clamp_power(power)
        for bucket in self.buckets:
            if bucket.contains(power):
                return bucket
        # Only reachable with oversized catalogs where slices ran past 100.
        return self.buckets[-1]

    def bucket_at_or_below(self, power) -> Bucket:
        """Returns the bucket with the largest center not above the power."""
        power = clamp_power(power)
        chosen = self.buckets[0]
        for bucket in self.buckets:
            if bucket.center <= power:
                chosen = bucket
            else:
                break
        return chosen

    def symbol_for(self, power) -> str:
        return self.bucket_for(power).symbol
