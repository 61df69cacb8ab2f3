"""
Rarity-adjusted challenge value.
"""

from typing import Optional

from .config import ScoringConfig
from .models import Challenge, minimum_points, round_half_up

# (exclusive upper bound on solve rate, multiplier); evaluated in order
RARITY_TABLE = (
    (0.10, 1.8),
    (0.25, 1.5),
    (0.50, 1.2),
    (0.80, 1.0),
)
UNSOLVED_MULTIPLIER = 2.0
COMMON_MULTIPLIER = 0.7
DAILY_MULTIPLIER = 1.5


def rarity_multiplier(solve_rate: float) -> float:
    """
    Map a solve rate to its rarity multiplier.

    @param solve_rate: Fraction of eligible teams that already solved the challenge
    @return: Multiplier between 0.7 and 2.0, non-increasing in solve_rate
    """
    if solve_rate <= 0:
        return UNSOLVED_MULTIPLIER

    for upper_bound, multiplier in RARITY_TABLE:
        if solve_rate < upper_bound:
            return multiplier
    return COMMON_MULTIPLIER


def compute_dynamic_points(
    challenge: Challenge,
    solve_count: Optional[int],
    eligible_team_count: Optional[int],
    config: ScoringConfig,
) -> int:
    """
    Convert a challenge's base value into its rarity-adjusted value.

    solve_count must be taken before the current solve is recorded. Missing or
    invalid inputs fall back to neutral values; this never raises.

    @param challenge: Challenge snapshot
    @param solve_count: Accepted solves of the challenge so far
    @param eligible_team_count: Teams counting towards the solve rate
    @param config: Active scoring configuration snapshot
    @return: Dynamic points, never below 30% of the base points
    """
    base_points = challenge.base_points

    if not eligible_team_count or eligible_team_count < 0 or not config.dynamic_scoring:
        return base_points

    solves = solve_count if solve_count and solve_count > 0 else 0
    solve_rate = solves / eligible_team_count

    difficulty = challenge.difficulty.value if challenge.difficulty else None
    daily = DAILY_MULTIPLIER if challenge.daily else 1.0

    points = round_half_up(
        base_points
        * rarity_multiplier(solve_rate)
        * config.difficulty_multiplier(difficulty)
        * config.category_multiplier(challenge.category)
        * daily
    )
    return max(points, minimum_points(base_points))
