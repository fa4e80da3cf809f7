"""
Winning-pattern selection and geometry.

`PatternSelector.pattern_for` is a pure function of the power value, so the same
power always draws the same shape. `resolve_pattern` turns a pattern name into
grid coordinates, and `place_clusters` builds the scattered cluster variant.
"""
import logging
import math
import random
from collections import namedtuple
from typing import Iterable, Optional

from utils.game_config import (
    CLUSTER_PATTERN, CLUSTER_PLACEMENT_ATTEMPTS, CLUSTER_RUN_LENGTHS,
    FAMILY_ORDER, MAX_CLUSTER_SHAPES, MIN_CLUSTER_SEPARATION, PATTERN_FAMILIES
)
from utils.power_buckets import PowerBucketer, clamp_power

logger = logging.getLogger(__name__)

PatternChoice = namedtuple("PatternChoice", ["name", "family", "remainder"])

Cell = tuple  # (row, col)


class PatternSelector:
    """Derives the highlighted shape from the winning power."""

    def __init__(self, bucketer: Optional[PowerBucketer] = None):
        self.bucketer = bucketer or PowerBucketer()

    def remainder_for(self, power) -> int:
        power = clamp_power(power)
        bucket = self.bucketer.bucket_for(power)
        return max(0, power - bucket.center)

    def family_for(self, power) -> str:
        return FAMILY_ORDER[self.remainder_for(power) % 3]

    def pattern_for(self, power) -> PatternChoice:
        remainder = self.remainder_for(power)
        family = FAMILY_ORDER[remainder % 3]
        variants = PATTERN_FAMILIES[family]
        name = variants[(remainder // 3) % len(variants)]
        return PatternChoice(name=name, family=family, remainder=remainder)


def _centered_run(length: int, size: int, middle: int) -> range:
    """A run of `length` indices centred on `middle`, kept inside [0, size)."""
    length = min(length, size)
    start = max(0, middle - length // 2)
    start = min(start, size - length)
    return range(start, start + length)


def _diagonal_start(rows: int, cols: int) -> tuple:
    length = min(rows, cols)
    start_col = max(0, cols // 2 - rows // 2)
    start_col = min(start_col, cols - length)
    return length, start_col


def resolve_pattern(name: str, rows: int, cols: int) -> frozenset:
    """Resolves a named pattern to the set of (row, col) cells it covers."""
    if rows <= 0 or cols <= 0:
        raise ValueError("Grid dimensions must be positive.")

    mid_row, mid_col = rows // 2, cols // 2
    cells = set()

    if name in ("horizontal-3", "horizontal-5"):
        length = int(name.rsplit("-", 1)[1])
        cells = {(mid_row, c) for c in _centered_run(length, cols, mid_col)}
    elif name == "vertical-3":
        cells = {(r, mid_col) for r in _centered_run(3, rows, mid_row)}
    elif name == "diagonal-main":
        length, start_col = _diagonal_start(rows, cols)
        cells = {(r, start_col + r) for r in range(length)}
    elif name == "diagonal-reverse":
        length, start_col = _diagonal_start(rows, cols)
        cells = {(r, start_col + length - 1 - r) for r in range(length)}
    elif name == "zigzag":
        top = max(0, mid_row - 1)
        cells = {(min(rows - 1, top + (c % 2)), c) for c in range(cols)}
    elif name == "v-shape":
        cells = {
            ((rows - 1) - min(abs(c - mid_col), rows - 1), c) for c in range(cols)
        }
    elif name == "cross":
        cells = resolve_pattern("horizontal-3", rows, cols) | resolve_pattern(
            "vertical-3", rows, cols
        )
    else:
        raise ValueError(f"Unknown pattern: {name}")

    return frozenset(cells)


def cluster_count_for(power) -> int:
    """Stronger wins scatter more shapes, from 1 up to MAX_CLUSTER_SHAPES."""
    return 1 + min(MAX_CLUSTER_SHAPES - 1, clamp_power(power, 0) // 25)


def _random_shape(rng: random.Random, rows: int, cols: int) -> Optional[list]:
    """Picks a shape and a position that fits; None if it cannot fit."""
    kind = rng.choice(("row", "column", "block", "diagonal"))
    if kind == "row":
        length = rng.choice(CLUSTER_RUN_LENGTHS)
        offsets = [(0, i) for i in range(length)]
    elif kind == "column":
        length = rng.choice(CLUSTER_RUN_LENGTHS)
        offsets = [(i, 0) for i in range(length)]
    elif kind == "block":
        offsets = [(0, 0), (0, 1), (1, 0), (1, 1)]
    else:
        step = rng.choice((1, -1))
        offsets = [(i, i * step) for i in range(3)]

    min_c = min(dc for _, dc in offsets)
    height = max(dr for dr, _ in offsets) + 1
    width = max(dc for _, dc in offsets) - min_c + 1
    if height > rows or width > cols:
        return None

    row = rng.randrange(rows - height + 1)
    col = rng.randrange(cols - width + 1) - min_c
    return [(row + dr, col + dc) for dr, dc in offsets]


def is_separated(candidate: Iterable[Cell], placed: Iterable[Cell],
                 min_distance: float = MIN_CLUSTER_SEPARATION) -> bool:
    """True when every candidate cell is farther than min_distance from every placed cell."""
    placed = list(placed)
    for r1, c1 in candidate:
        for r2, c2 in placed:
            if math.hypot(r1 - r2, c1 - c2) <= min_distance:
                return False
    return True


def place_clusters(rows: int, cols: int, count: int, rng: random.Random,
                   attempts: int = CLUSTER_PLACEMENT_ATTEMPTS) -> list:
    """
    Places up to `count` separated shapes with a bounded retry loop.

    Returns a list of shapes (lists of cells). Always returns at least one shape:
    when nothing fits, a 3-in-a-row on the middle row is forced.
    """
    count = max(1, min(MAX_CLUSTER_SHAPES, count))
    shapes = []
    placed_cells = []

    for _ in range(attempts):
        if len(shapes) >= count:
            break
        candidate = _random_shape(rng, rows, cols)
        if candidate is None:
            continue
        if is_separated(candidate, placed_cells):
            shapes.append(candidate)
            placed_cells.extend(candidate)

    if not shapes:
        logger.warning(
            "Cluster placement exhausted %s attempts on a %sx%s grid; using fallback row.",
            attempts, rows, cols
        )
        shapes.append(sorted(resolve_pattern("horizontal-3", rows, cols)))

    return shapes


def pattern_cells(name: str, rows: int, cols: int, rng: random.Random,
                  cluster_count: int = 1) -> frozenset:
    """Cells for either a named pattern or the cluster layout."""
    if name == CLUSTER_PATTERN:
        shapes = place_clusters(rows, cols, cluster_count, rng)
        return frozenset(cell for shape in shapes for cell in shape)
    return resolve_pattern(name, rows, cols)
