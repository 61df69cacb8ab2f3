"""
Score aggregation.

One call to ScoreAggregator.score() turns a verified SolveEvent into a
ScoreBreakdown. The aggregator only reads: persisting the solve, and settling
first blood for good, is the caller's job (see submission.SubmissionService).
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Tuple

from .config import ConfigStore, ScoringConfig
from .dynamic_points import compute_dynamic_points
from .errors import CollaboratorUnavailable
from .first_blood import FirstBloodResolver
from .models import (
    Challenge,
    FirstBloodResult,
    ScoreBreakdown,
    SolveEvent,
    minimum_points,
    round_half_up,
)
from .repository import ChallengeDirectory, SolveRepository
from .speed_bonus import compute_speed_bonus
from .team_size import compute_team_size_modifier


class ScoringState(str, enum.Enum):
    """Lifecycle of a single scoring operation."""

    STARTED = "started"
    CONFIG_LOADED = "config_loaded"
    COMPONENTS_COMPUTED = "components_computed"
    COMBINED = "combined"
    FINALIZED = "finalized"


_NEXT_STATE = {
    ScoringState.STARTED: ScoringState.CONFIG_LOADED,
    ScoringState.CONFIG_LOADED: ScoringState.COMPONENTS_COMPUTED,
    ScoringState.COMPONENTS_COMPUTED: ScoringState.COMBINED,
    ScoringState.COMBINED: ScoringState.FINALIZED,
}


class ScoringOperation:
    """Tracks the state of one scoring computation and the fallbacks it took."""

    def __init__(self, event: SolveEvent) -> None:
        self.event = event
        self.state = ScoringState.STARTED
        self.history: List[ScoringState] = [ScoringState.STARTED]
        self.fallbacks: List[str] = []

    def advance(self, state: ScoringState) -> None:
        if _NEXT_STATE.get(self.state) is not state:
            raise RuntimeError(f"Invalid scoring transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fall_back(self, source: str, error: Exception) -> None:
        print(
            f"Warning: {source} unavailable while scoring {self.event.challenge_id} "
            f"for {self.event.team_id}, using defaults: {error}"
        )
        self.fallbacks.append(source)


@dataclass(frozen=True)
class ScoreResult:
    """Candidate score returned to the caller before the durable write."""

    breakdown: ScoreBreakdown
    states: Tuple[ScoringState, ...]
    fallbacks: Tuple[str, ...]

    @property
    def candidate_first_blood(self) -> bool:
        return self.breakdown.is_first_blood


class ScoreAggregator:
    """Combines dynamic points, first blood, speed bonus and team-size modifier."""

    def __init__(
        self,
        config_store: ConfigStore,
        repository: SolveRepository,
        directory: Optional[ChallengeDirectory] = None,
    ) -> None:
        self.config_store = config_store
        self.repository = repository
        self.directory = directory
        self.first_blood = FirstBloodResolver(repository)

    def _load_config(self, operation: ScoringOperation) -> ScoringConfig:
        try:
            return self.config_store.current_config()
        except CollaboratorUnavailable as e:
            operation.fall_back("config store", e)
            return ScoringConfig()

    async def _read(
        self,
        operation: ScoringOperation,
        source: str,
        call: Awaitable[Any],
        default: Any,
    ) -> Any:
        try:
            return await call
        except CollaboratorUnavailable as e:
            operation.fall_back(source, e)
            return default

    async def _load_challenge(
        self,
        operation: ScoringOperation,
        challenge_id: str,
    ) -> Challenge:
        if self.directory is None:
            return Challenge.placeholder(challenge_id)

        challenge = await self._read(
            operation,
            "challenge directory",
            self.directory.get_challenge(challenge_id),
            None,
        )
        if challenge is None:
            print(f"Warning: No challenge snapshot for {challenge_id}, using neutral defaults")
            return Challenge.placeholder(challenge_id)
        return challenge

    async def _count_eligible_teams(self, operation: ScoringOperation) -> int:
        if self.directory is None:
            return 0
        return await self._read(
            operation,
            "challenge directory",
            self.directory.count_eligible_teams(),
            0,
        )

    async def score(
        self,
        event: SolveEvent,
        challenge: Optional[Challenge] = None,
    ) -> ScoreResult:
        """
        Compute the candidate score for a verified solve.

        Collaborator failures degrade to defaults instead of aborting, so a
        correct flag always receives at least 30% of the challenge's base points.

        @param event: The verified solve
        @param challenge: Challenge snapshot; looked up in the directory when omitted
        @return: Candidate breakdown plus the states and fallbacks of the operation
        """
        operation = ScoringOperation(event)

        config = self._load_config(operation)
        operation.advance(ScoringState.CONFIG_LOADED)

        if challenge is None:
            challenge_read = self._load_challenge(operation, event.challenge_id)
        else:
            challenge_read = asyncio.sleep(0, result=challenge)

        challenge, solve_count, eligible_teams, first_blood = await asyncio.gather(
            challenge_read,
            self._read(
                operation,
                "solve repository",
                self.repository.count_solves(event.challenge_id),
                0,
            ),
            self._count_eligible_teams(operation),
            self._read(
                operation,
                "solve repository",
                self.first_blood.resolve(event.challenge_id, config, event.solved_at),
                FirstBloodResult(bonus=0, is_first_blood=False),
            ),
        )

        dynamic_points = compute_dynamic_points(
            challenge, solve_count, eligible_teams, config
        )
        speed_bonus = compute_speed_bonus(
            challenge.released_at,
            event.solved_at,
            challenge.difficulty,
            enabled=config.speed_bonus,
        )
        team_size_modifier = compute_team_size_modifier(
            event.team_size,
            config.max_team_size,
            enabled=config.team_size_penalty,
        )
        operation.advance(ScoringState.COMPONENTS_COMPUTED)

        adjusted_points = round_half_up(dynamic_points * team_size_modifier)
        total_points = max(
            adjusted_points + first_blood.bonus + speed_bonus,
            minimum_points(challenge.base_points),
        )
        operation.advance(ScoringState.COMBINED)

        breakdown = ScoreBreakdown(
            challenge_id=event.challenge_id,
            team_id=event.team_id,
            base_points=challenge.base_points,
            dynamic_points=dynamic_points,
            first_blood_bonus=first_blood.bonus,
            speed_bonus=speed_bonus,
            team_size_modifier=team_size_modifier,
            total_points=total_points,
            is_first_blood=first_blood.is_first_blood,
            difficulty=challenge.difficulty.value if challenge.difficulty else None,
            category=challenge.category,
            daily=challenge.daily,
            solved_at=event.solved_at,
            team_size=event.team_size,
            solve_count=solve_count,
            eligible_team_count=eligible_teams,
        )
        operation.advance(ScoringState.FINALIZED)

        return ScoreResult(
            breakdown=breakdown,
            states=tuple(operation.history),
            fallbacks=tuple(operation.fallbacks),
        )
