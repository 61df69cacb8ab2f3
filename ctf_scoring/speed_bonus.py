"""
Bonus for solving a challenge soon after its release.
"""

from datetime import datetime
from typing import Optional

from .models import Difficulty

FAST_BONUS = 25
MEDIUM_BONUS = 10

# difficulty -> (fast hours, medium hours)
SPEED_THRESHOLDS = {
    Difficulty.EASY: (1, 6),
    Difficulty.MEDIUM: (2, 12),
    Difficulty.HARD: (4, 24),
    Difficulty.EXPERT: (8, 48),
}


def compute_speed_bonus(
    release_time: Optional[datetime],
    solve_time: Optional[datetime],
    difficulty: Optional[Difficulty],
    enabled: bool = True,
) -> int:
    """
    Compute the speed bonus for a solve.

    @param release_time: When the challenge was released
    @param solve_time: When the challenge was solved
    @param difficulty: Challenge difficulty; unknown values use the medium thresholds
    @param enabled: Speed bonus toggle from the scoring configuration
    @return: 25, 10 or 0 points
    """
    if not enabled or release_time is None or solve_time is None:
        return 0

    elapsed_hours = (solve_time - release_time).total_seconds() / 3600
    if elapsed_hours < 0:
        return 0

    fast, medium = SPEED_THRESHOLDS.get(
        Difficulty.parse(difficulty), SPEED_THRESHOLDS[Difficulty.MEDIUM]
    )

    if elapsed_hours <= fast:
        return FAST_BONUS
    elif elapsed_hours <= medium:
        return MEDIUM_BONUS
    return 0
