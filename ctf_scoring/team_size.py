"""
Penalty multiplier for larger teams.
"""

MIN_MODIFIER = 0.7
PENALTY_SLOPE = 0.3


def compute_team_size_modifier(
    team_size: int,
    max_team_size: int,
    enabled: bool = True,
) -> float:
    """
    Compute the team-size multiplier.

    Solo players get 1.0; larger teams lose up to 30% of their points.

    @param team_size: Members on the solving team
    @param max_team_size: Configured maximum team size (clamped to at least 1)
    @param enabled: Team-size penalty toggle from the scoring configuration
    @return: Multiplier in [0.7, 1.0], non-increasing in team_size
    """
    if not enabled or team_size <= 1:
        return 1.0

    size_ratio = team_size / max(1, max_team_size)
    return min(1.0, max(MIN_MODIFIER, 1.0 - (size_ratio - 1) * PENALTY_SLOPE))
