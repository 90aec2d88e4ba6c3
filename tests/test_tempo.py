"""Tests for tempo ratio decomposition."""

import math

import pytest

from convert_toolkit.core.tempo import TEMPO_RATIOS, split_tempo, tempo_filter


@pytest.mark.parametrize("ratio", [0.1, 0.3, 0.5, 0.96, 1.0, 1.042709, 2.0, 3.7, 10.0])
def test_stages_stay_in_range_and_multiply_back(ratio: float) -> None:
    """Every stage lies in [0.5, 2.0] and the product matches the ratio."""
    stages = split_tempo(ratio)
    assert stages
    assert all(0.5 <= stage <= 2.0 for stage in stages)
    assert math.isclose(math.prod(stages), ratio, abs_tol=1e-4)


def test_extreme_ratio_is_split_into_several_stages() -> None:
    """0.1 needs repeated halving before the remainder fits."""
    assert split_tempo(0.1) == [0.5, 0.5, 0.5, 0.8]
    assert split_tempo(10.0) == [2.0, 2.0, 2.0, 1.25]


@pytest.mark.parametrize("ratio", [0, -1.5, float("nan"), float("inf")])
def test_unusable_ratio_gives_no_stages(ratio: float) -> None:
    """Non-finite or non-positive ratios are ignored."""
    assert split_tempo(ratio) == []


def test_every_named_conversion_builds_a_filter() -> None:
    """All table entries produce a valid atempo chain."""
    for key in TEMPO_RATIOS:
        expression = tempo_filter(key)
        assert expression is not None
        assert expression.startswith("atempo=")


def test_unknown_or_none_key_has_no_filter() -> None:
    """'none' and unknown keys mean no tempo change."""
    assert tempo_filter("none") is None
    assert tempo_filter(None) is None
    assert tempo_filter("99_1") is None
