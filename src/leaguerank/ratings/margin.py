"""
Point differential weighting for rating updates.

Plain TrueSkill only looks at who won. In a recreational league a 15-2 game
says more than a 7-6 one, so the mean update is multiplied by a factor that
grows with the point differential:

    weighted(d) = |d|                              if |d| <= D
                = D + ln(|d| - D + 1) * 2.2        otherwise

    multiplier  = clamp(1 + margin_scale * weighted / D, 1.0, multiplier_max)

The log tail keeps a 20-point blowout from counting four times as much as a
5-point win. Draws always use 1.0 and margin_scale = 0 switches the whole
thing off.
"""

import math
from typing import Optional

from leaguerank.ratings.constants import MARGIN_DEFAULTS


def weighted_point_differential(
    differential: float,
    max_full_weight: Optional[float] = None,
    log_weight: Optional[float] = None,
) -> float:
    """
    Bounded weight for an absolute point differential.

    Args:
        differential: Score difference (sign is ignored)
        max_full_weight: Differential counted at full weight (default 5)
        log_weight: Slope of the log damping beyond max_full_weight (default 2.2)

    Returns:
        Non-negative weighted differential

    Examples:
        weighted_point_differential(3)    # → 3.0
        weighted_point_differential(-5)   # → 5.0
        weighted_point_differential(10)   # → 5 + ln(6) * 2.2 ≈ 8.94
    """
    if max_full_weight is None:
        max_full_weight = MARGIN_DEFAULTS["max_full_weight_differential"]
    if log_weight is None:
        log_weight = MARGIN_DEFAULTS["log_weight"]

    abs_diff = abs(float(differential))
    if abs_diff <= max_full_weight:
        return abs_diff
    return max_full_weight + math.log(abs_diff - max_full_weight + 1.0) * log_weight


def margin_multiplier(
    home_score: int,
    away_score: int,
    margin_scale: Optional[float] = None,
    max_full_weight: Optional[float] = None,
    multiplier_max: Optional[float] = None,
) -> float:
    """
    Mean-update multiplier for a completed game.

    Returns 1.0 for draws and when margin_scale is 0. Otherwise the result is
    always in [1.0, multiplier_max].
    """
    if margin_scale is None:
        margin_scale = MARGIN_DEFAULTS["margin_scale"]
    if max_full_weight is None:
        max_full_weight = MARGIN_DEFAULTS["max_full_weight_differential"]
    if multiplier_max is None:
        multiplier_max = MARGIN_DEFAULTS["multiplier_max"]

    differential = home_score - away_score
    if differential == 0 or margin_scale <= 0 or max_full_weight <= 0:
        return 1.0

    weighted = weighted_point_differential(differential, max_full_weight)
    multiplier = 1.0 + margin_scale * weighted / max_full_weight

    # Clamp so a single blowout can't swamp a season of results
    return max(1.0, min(multiplier_max, multiplier))
