"""
Builds the final symbol grid for a spin outcome.

Losing grids carry no two equal neighbours (horizontally, vertically or on
either diagonal) so a loss never looks like a near-win. Winning grids embed the
selected pattern with the win symbol and keep the rest of the board match-free.
All randomness goes through the injected `random.Random`.
"""
import logging
import random
from collections import namedtuple
from typing import Iterable, Optional, Sequence

from utils.exceptions import InsufficientSymbols
from utils.game_config import FILL_ATTEMPTS, REPAIR_STEPS, SWAP_TRIES, SYMBOLS
from utils.patterns import pattern_cells

logger = logging.getLogger(__name__)

GridResult = namedtuple("GridResult", ["grid", "highlights", "degraded"])

# Right, down, down-right, down-left: each unordered neighbour pair once.
PAIR_OFFSETS = ((0, 1), (1, 0), (1, 1), (1, -1))
NEIGHBOR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)
)


def copy_grid(grid):
    return [list(row) for row in grid]


def find_adjacent_matches(grid, locked: Iterable = ()) -> list:
    """
    Lists every pair of neighbouring cells that hold the same symbol.
    Pairs where both cells are locked (e.g. inside a winning pattern) are ignored.
    """
    locked = frozenset(locked)
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    matches = []
    for r in range(rows):
        for c in range(cols):
            symbol = grid[r][c]
            if symbol is None:
                continue
            for dr, dc in PAIR_OFFSETS:
                r2, c2 = r + dr, c + dc
                if not (0 <= r2 < rows and 0 <= c2 < cols):
                    continue
                if grid[r2][c2] != symbol:
                    continue
                if (r, c) in locked and (r2, c2) in locked:
                    continue
                matches.append(((r, c), (r2, c2)))
    return matches


def has_adjacent_match(grid, locked: Iterable = ()) -> bool:
    return bool(find_adjacent_matches(grid, locked))


def _neighbor_symbols(grid, row: int, col: int) -> set:
    rows, cols = len(grid), len(grid[0])
    found = set()
    for dr, dc in NEIGHBOR_OFFSETS:
        r2, c2 = row + dr, col + dc
        if 0 <= r2 < rows and 0 <= c2 < cols:
            found.add(grid[r2][c2])
    return found


def _conflicts_at(grid, row: int, col: int) -> int:
    symbol = grid[row][col]
    return sum(1 for s in _neighbor_symbols_list(grid, row, col) if s == symbol)


def _neighbor_symbols_list(grid, row: int, col: int) -> list:
    rows, cols = len(grid), len(grid[0])
    return [
        grid[row + dr][col + dc]
        for dr, dc in NEIGHBOR_OFFSETS
        if 0 <= row + dr < rows and 0 <= col + dc < cols
    ]


class GridSynthesizer:
    """Produces losing and winning grids from a symbol catalog and an RNG."""

    def __init__(self, symbols: Sequence[str] = SYMBOLS, rng: Optional[random.Random] = None,
                 fill_attempts: int = FILL_ATTEMPTS, repair_steps: int = REPAIR_STEPS):
        if not symbols:
            raise ValueError("The symbol catalog cannot be empty.")
        self.symbols = tuple(symbols)
        self.rng = rng or random.Random()
        self.fill_attempts = fill_attempts
        self.repair_steps = repair_steps

    # --- Columns ---
    def _unique_column(self, rows: int, exclude: Iterable[str] = ()) -> list:
        exclude = set(exclude)
        pool = [s for s in self.symbols if s not in exclude]
        if rows > len(pool):
            raise InsufficientSymbols(
                details={"rows": rows, "available": len(pool)}
            )
        return self.rng.sample(pool, rows)

    def random_column(self, rows: int, exclude: Iterable[str] = ()) -> list:
        """A column with no repeats, or with repeats if the catalog is too small."""
        exclude = tuple(exclude)
        try:
            return self._unique_column(rows, exclude)
        except InsufficientSymbols as e:
            logger.debug("Column sampling with replacement: %s", e.details)
            pool = [s for s in self.symbols if s not in exclude] or list(self.symbols)
            return [self.rng.choice(pool) for _ in range(rows)]

    def random_grid(self, rows: int, cols: int) -> list:
        """An unchecked fill, column by column. Used for spinning frames."""
        grid = [[None] * cols for _ in range(rows)]
        for c in range(cols):
            column = self.random_column(rows)
            for r in range(rows):
                grid[r][c] = column[r]
        return grid

    # --- Repair ---
    def _column_symbols(self, grid, col: int, skip_row: int) -> set:
        return {grid[r][col] for r in range(len(grid)) if r != skip_row}

    def _try_swap(self, grid, row: int, col: int, locked: frozenset) -> bool:
        """Swaps the cell with another cell of the same column if that lowers conflicts."""
        rows = len(grid)
        candidates = [r for r in range(rows) if r != row and (r, col) not in locked]
        if not candidates:
            return False
        for _ in range(SWAP_TRIES):
            other = self.rng.choice(candidates)
            before = _conflicts_at(grid, row, col) + _conflicts_at(grid, other, col)
            grid[row][col], grid[other][col] = grid[other][col], grid[row][col]
            after = _conflicts_at(grid, row, col) + _conflicts_at(grid, other, col)
            if after < before:
                return True
            grid[row][col], grid[other][col] = grid[other][col], grid[row][col]
        return False

    def _try_substitute(self, grid, row: int, col: int, avoid: Iterable[str] = ()) -> bool:
        """Replaces the cell with a symbol unused in its column and unlike its neighbours."""
        banned = _neighbor_symbols(grid, row, col) | set(avoid)
        in_column = self._column_symbols(grid, col, row)
        pool = [s for s in self.symbols if s not in banned and s not in in_column]
        if not pool:
            pool = [s for s in self.symbols if s not in banned]
        if not pool:
            return False
        grid[row][col] = self.rng.choice(pool)
        return True

    def repair(self, grid, locked: Iterable = (), avoid: Iterable[str] = ()) -> bool:
        """
        Resolves adjacency violations in place, never touching locked cells.
        Returns True when the grid ends up clean.
        """
        locked = frozenset(locked)
        avoid = tuple(avoid)
        for _ in range(self.repair_steps):
            matches = find_adjacent_matches(grid, locked)
            if not matches:
                return True
            offenders = [
                cell for pair in matches for cell in pair if cell not in locked
            ]
            if not offenders:
                return False
            row, col = self.rng.choice(offenders)
            if not self._try_swap(grid, row, col, locked):
                self._try_substitute(grid, row, col, avoid)
        return not has_adjacent_match(grid, locked)

    # --- Public entry points ---
    def lose_grid(self, rows: int, cols: int) -> GridResult:
        """A grid with no equal neighbours anywhere."""
        grid = None
        for attempt in range(1, self.fill_attempts + 1):
            grid = self.random_grid(rows, cols)
            if not has_adjacent_match(grid):
                logger.debug("Losing grid clean after %s fill(s).", attempt)
                return GridResult(grid, frozenset(), False)

        if self.repair(grid):
            return GridResult(grid, frozenset(), False)

        logger.warning(
            "Losing grid %sx%s still has %s adjacent match(es) after repair; "
            "using best-effort result.",
            rows, cols, len(find_adjacent_matches(grid))
        )
        return GridResult(grid, frozenset(), True)

    def win_grid(self, rows: int, cols: int, pattern: str, win_symbol: str,
                 cluster_count: int = 1) -> GridResult:
        """A match-free grid with `win_symbol` stamped over the pattern cells."""
        base = self.lose_grid(rows, cols)
        grid = base.grid
        cells = pattern_cells(pattern, rows, cols, self.rng, cluster_count)

        for r, c in cells:
            grid[r][c] = win_symbol

        # Scrub stray copies of the win symbol so the pattern stands alone.
        for r in range(rows):
            for c in range(cols):
                if (r, c) not in cells and grid[r][c] == win_symbol:
                    self._try_substitute(grid, r, c, avoid=(win_symbol,))

        clean = self.repair(grid, locked=cells, avoid=(win_symbol,))
        if not clean:
            logger.warning(
                "Winning grid around pattern %s could not be fully cleaned.", pattern
            )
        return GridResult(grid, cells, not clean)
