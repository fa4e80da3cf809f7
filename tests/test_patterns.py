import math
import random

import pytest

from utils.game_config import PATTERN_FAMILIES
from utils.patterns import (
    PatternSelector, cluster_count_for, is_separated, pattern_cells,
    place_clusters, resolve_pattern
)

ALL_PATTERNS = [name for names in PATTERN_FAMILIES.values() for name in names]


def test_pattern_for_is_deterministic():
    selector = PatternSelector()
    for power in range(0, 101):
        assert selector.pattern_for(power) == selector.pattern_for(power)


def test_pattern_for_picks_variant_by_remainder():
    selector = PatternSelector()
    # Bucket [46, 50] has center 48.
    assert selector.pattern_for(48).name == "horizontal-5"
    assert selector.pattern_for(49).name == "vertical-3"
    assert selector.pattern_for(50).name == "diagonal-main"
    # Bucket [1, 5] has center 3; powers below the center give remainder 0.
    assert selector.pattern_for(1).remainder == 0


def test_pattern_for_only_returns_known_patterns():
    selector = PatternSelector()
    for power in range(0, 101):
        choice = selector.pattern_for(power)
        assert choice.name in PATTERN_FAMILIES[choice.family]


@pytest.mark.parametrize("name", ALL_PATTERNS)
@pytest.mark.parametrize("rows, cols", [(5, 7), (3, 3), (1, 1), (6, 4)])
def test_resolved_patterns_stay_inside_grid(name, rows, cols):
    cells = resolve_pattern(name, rows, cols)
    assert cells
    for r, c in cells:
        assert 0 <= r < rows
        assert 0 <= c < cols


def test_named_shapes_on_default_grid():
    assert resolve_pattern("horizontal-5", 5, 7) == {(2, c) for c in range(1, 6)}
    assert resolve_pattern("horizontal-3", 5, 7) == {(2, 2), (2, 3), (2, 4)}
    assert resolve_pattern("vertical-3", 5, 7) == {(1, 3), (2, 3), (3, 3)}
    assert resolve_pattern("diagonal-main", 5, 7) == {(r, r + 1) for r in range(5)}
    assert resolve_pattern("diagonal-reverse", 5, 7) == {(r, 5 - r) for r in range(5)}
    assert len(resolve_pattern("cross", 5, 7)) == 5
    assert len(resolve_pattern("zigzag", 5, 7)) == 7
    assert (4, 3) in resolve_pattern("v-shape", 5, 7)


def test_unknown_pattern_is_rejected():
    with pytest.raises(ValueError):
        resolve_pattern("spiral", 5, 7)


@pytest.mark.parametrize("power, expected", [(0, 1), (24, 1), (25, 2), (60, 3), (75, 4), (100, 4)])
def test_cluster_count_scales_with_power(power, expected):
    assert cluster_count_for(power) == expected


def test_clusters_are_separated():
    for seed in range(50):
        rng = random.Random(seed)
        shapes = place_clusters(5, 7, 4, rng)
        assert 1 <= len(shapes) <= 4
        for i, shape in enumerate(shapes):
            others = [cell for j, other in enumerate(shapes) if j != i for cell in other]
            assert is_separated(shape, others)


def test_separation_is_strictly_greater_than_minimum():
    assert not is_separated([(0, 0)], [(0, 2)])
    assert is_separated([(0, 0)], [(0, 3)])
    # sqrt(5) is about 2.236, still too close
    assert not is_separated([(0, 0)], [(1, 2)])
    assert math.hypot(2, 2) > 2.3
    assert is_separated([(0, 0)], [(2, 2)])


def test_cluster_fallback_when_nothing_fits():
    # Zero attempts leaves nothing placed, so the middle 3-in-a-row is forced.
    shapes = place_clusters(5, 7, 3, random.Random(0), attempts=0)
    assert shapes == [sorted(resolve_pattern("horizontal-3", 5, 7))]


def test_cluster_cells_never_empty():
    for seed in range(20):
        cells = pattern_cells("cluster", 5, 7, random.Random(seed), cluster_count=2)
        assert cells
