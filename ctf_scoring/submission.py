"""
Recording a verified solve.

SubmissionService is the caller the aggregator expects: it computes a
candidate score, performs the conditional write, and only then confirms
first blood by re-reading the store after the commit point.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .aggregator import ScoreAggregator
from .errors import RepositoryUnavailable
from .models import Challenge, InsertOutcome, ScoreBreakdown, SolveEvent
from .repository import SolveRecord, SolveRepository


@dataclass(frozen=True)
class SubmissionResult:
    """
    Outcome of recording one verified solve.

    A duplicate carries no breakdown: nothing was awarded, so there is no
    award to audit.
    """

    accepted: bool
    duplicate: bool
    awarded: int
    is_first_blood: bool
    breakdown: Optional[ScoreBreakdown]
    solve_id: Optional[int] = None

    @property
    def message(self) -> str:
        if self.duplicate:
            return "Correct! Your team already solved this challenge."
        if self.is_first_blood:
            return "Correct! First blood! Points awarded to your team."
        return "Correct! Points awarded to your team."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correct": True,
            "accepted": self.accepted,
            "duplicate": self.duplicate,
            "awarded": self.awarded,
            "points": self.breakdown.base_points if self.breakdown else None,
            "is_first_blood": self.is_first_blood,
            "solve_id": self.solve_id,
            "message": self.message,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
        }


class SubmissionService:
    """Runs the candidate / conditional write / confirm protocol for solves."""

    def __init__(
        self,
        aggregator: ScoreAggregator,
        repository: SolveRepository,
    ) -> None:
        self.aggregator = aggregator
        self.repository = repository

    async def record_solve(
        self,
        event: SolveEvent,
        challenge: Optional[Challenge] = None,
    ) -> SubmissionResult:
        """
        Score and persist a verified solve.

        A resubmission by a team that already solved the challenge is awarded
        zero points, creates no record and returns no breakdown; it is not an
        error.

        @param event: The verified solve
        @param challenge: Optional challenge snapshot, forwarded to the aggregator
        @return: Awarded points and the authoritative breakdown (None for duplicates)
        @raise RepositoryUnavailable: If the conditional write itself fails
        """
        result = await self.aggregator.score(event, challenge)
        candidate = result.breakdown

        # The record starts points-only; first blood is only written once confirmed
        points_only = candidate.without_first_blood()
        record = SolveRecord(
            team_id=event.team_id,
            challenge_id=event.challenge_id,
            solved_at=event.solved_at,
            points=points_only.total_points,
            breakdown=points_only.to_dict(),
        )

        outcome, solve_id = await self.repository.conditional_insert(
            event.team_id, event.challenge_id, record
        )

        if outcome is InsertOutcome.ALREADY_EXISTS:
            print(
                f"Duplicate solve of {event.challenge_id} by {event.team_id}, "
                f"no points awarded"
            )
            return SubmissionResult(
                accepted=False,
                duplicate=True,
                awarded=0,
                is_first_blood=False,
                breakdown=None,
            )

        if not candidate.is_first_blood:
            print(
                f"Accepted solve of {event.challenge_id} by {event.team_id}: "
                f"{points_only.total_points} points"
            )
            return SubmissionResult(
                accepted=True,
                duplicate=False,
                awarded=points_only.total_points,
                is_first_blood=False,
                breakdown=points_only,
                solve_id=solve_id,
            )

        final = await self._confirm_first_blood(candidate, points_only, solve_id)
        return SubmissionResult(
            accepted=True,
            duplicate=False,
            awarded=final.total_points,
            is_first_blood=final.is_first_blood,
            breakdown=final,
            solve_id=solve_id,
        )

    async def _confirm_first_blood(
        self,
        candidate: ScoreBreakdown,
        points_only: ScoreBreakdown,
        solve_id: int,
    ) -> ScoreBreakdown:
        """
        Re-check first blood after the write has committed.

        @param candidate: Breakdown carrying the candidate first-blood bonus
        @param points_only: The same breakdown with first blood withdrawn
        @param solve_id: Id of the committed solve
        @return: The authoritative breakdown
        """
        try:
            taken = await self.repository.has_earlier_solve(
                candidate.challenge_id, solve_id
            )
            confirmed = not taken and await self.repository.finalize_solve(
                solve_id, candidate.total_points, True, candidate.to_dict()
            )
        except RepositoryUnavailable as e:
            print(
                f"Warning: Could not confirm first blood on {candidate.challenge_id} "
                f"for {candidate.team_id}, awarded points only: {e}"
            )
            return points_only

        if taken:
            print(
                f"First blood on {candidate.challenge_id} already taken, "
                f"{candidate.team_id} awarded points only"
            )
            return points_only

        if not confirmed:
            print(
                f"Store refused first blood on {candidate.challenge_id} "
                f"for {candidate.team_id}, awarded points only"
            )
            return points_only

        print(
            f"First blood on {candidate.challenge_id} by {candidate.team_id}: "
            f"{candidate.total_points} points"
        )
        return candidate
