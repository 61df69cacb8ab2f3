"""
First-blood resolution.

The resolver only reads. Its answer is the bonus to offer; the solve
repository's conditional insert and the caller's confirm-after-write check
decide who actually holds first blood.
"""

from datetime import datetime
from typing import Optional

from .config import ScoringConfig
from .models import FirstBloodResult
from .repository import SolveRepository


class FirstBloodResolver:
    """Decides whether a submission is a candidate for first blood."""

    def __init__(self, repository: SolveRepository) -> None:
        self.repository = repository

    async def resolve(
        self,
        challenge_id: str,
        config: ScoringConfig,
        as_of: Optional[datetime] = None,
    ) -> FirstBloodResult:
        """
        Offer the first-blood bonus if the challenge has no accepted solve yet.

        Any earlier accepted solve rules first blood out, whatever its
        timestamp relative to as_of; simultaneous solves are settled by the
        repository write order, not here.

        @param challenge_id: Challenge being solved
        @param config: Active scoring configuration snapshot
        @param as_of: Solve time of the submission; does not affect the decision
        @return: Candidate bonus and first-blood flag
        @raise RepositoryUnavailable: If the repository cannot be read
        """
        earliest = await self.repository.earliest_solve(challenge_id)

        if earliest is None:
            return FirstBloodResult(bonus=config.first_blood_bonus, is_first_blood=True)
        return FirstBloodResult(bonus=0, is_first_blood=False)
