"""
Collaborator contracts the scoring engine reads from and writes to.
"""

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .models import Challenge, InsertOutcome


@dataclass(frozen=True)
class SolveRecord:
    """A solve as stored by the repository."""

    team_id: str
    challenge_id: str
    solved_at: datetime
    points: int
    is_first_blood: bool = False
    breakdown: Optional[Dict[str, Any]] = None
    solve_id: Optional[int] = None


class ChallengeDirectory(abc.ABC):
    """Source of challenge snapshots and the eligible-team count."""

    @abc.abstractmethod
    async def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        """Return the challenge snapshot, None if unknown."""

    @abc.abstractmethod
    async def count_eligible_teams(self) -> int:
        """Number of teams that count towards a challenge's solve rate."""


class SolveRepository(abc.ABC):
    """
    Durable store of accepted solves.

    Reads raise RepositoryUnavailable when the store cannot answer.
    conditional_insert is the only primitive that decides a race: it inserts
    if and only if no record exists for the team and challenge.
    """

    @abc.abstractmethod
    async def count_solves(self, challenge_id: str) -> int:
        """Number of accepted solves of a challenge."""

    @abc.abstractmethod
    async def earliest_solve(self, challenge_id: str) -> Optional[datetime]:
        """Timestamp of the first accepted solve of a challenge, None if unsolved."""

    @abc.abstractmethod
    async def existing_solve(
        self, team_id: str, challenge_id: str
    ) -> Optional[SolveRecord]:
        """The team's accepted solve of a challenge, None if there is none."""

    @abc.abstractmethod
    async def conditional_insert(
        self, team_id: str, challenge_id: str, record: SolveRecord
    ) -> Tuple[InsertOutcome, Optional[int]]:
        """Insert the record unless the team already solved the challenge."""

    @abc.abstractmethod
    async def has_earlier_solve(self, challenge_id: str, solve_id: int) -> bool:
        """True if another solve of the challenge was accepted before solve_id."""

    @abc.abstractmethod
    async def finalize_solve(
        self, solve_id: int, points: int, is_first_blood: bool, breakdown: Dict[str, Any]
    ) -> bool:
        """Record the authoritative award; False if the store refused first blood."""
