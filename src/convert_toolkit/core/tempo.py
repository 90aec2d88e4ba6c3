"""Speed-change ratio decomposition for the ``atempo`` filter."""

from __future__ import annotations

import math

from ..config.constants import TEMPO_STAGE_DECIMALS, TEMPO_STAGE_MAX, TEMPO_STAGE_MIN

# Named frame-rate conversions (source_target) -> playback speed ratio
TEMPO_RATIOS: dict[str, float] = {
    "24000_23976": 24000 / 23976,
    "25_24": 24 / 25,
    "25_23976": 23976 / 25000,
    "30_23976": 23976 / 30000,
    "30_24": 24 / 30,
    "24000_25000": 25000 / 24000,
    "23976_24000": 24000 / 23976,
    "23976_25000": 25000 / 23976,
    "30000_23976": 23976 / 30000,
    "30000_25000": 25000 / 30000,
}


def split_tempo(ratio: float) -> list[float]:
    """
    Split a speed ratio into filter stages that each lie in [0.5, 2.0].

    The product of the stages equals ``ratio`` up to rounding.  Non-finite
    or non-positive ratios yield no stages.
    """
    if not isinstance(ratio, (int, float)) or not math.isfinite(ratio) or ratio <= 0:
        return []

    stages = []
    remaining = float(ratio)
    while remaining < TEMPO_STAGE_MIN:
        stages.append(TEMPO_STAGE_MIN)
        remaining /= TEMPO_STAGE_MIN
    while remaining > TEMPO_STAGE_MAX:
        stages.append(TEMPO_STAGE_MAX)
        remaining /= TEMPO_STAGE_MAX
    stages.append(remaining)
    return [round(stage, TEMPO_STAGE_DECIMALS) for stage in stages]


def tempo_filter(key: str | None) -> str | None:
    """Filter expression for a named conversion, e.g. ``atempo=1.001001``."""
    ratio = TEMPO_RATIOS.get(str(key or "none"))
    if ratio is None:
        return None
    stages = split_tempo(ratio)
    if not stages:
        return None
    return ",".join(f"atempo={stage:g}" if stage.is_integer() else f"atempo={stage}" for stage in stages)
