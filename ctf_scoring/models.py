"""
Value types shared by the scoring engine.

Everything here is immutable once built: a Challenge is a snapshot taken for
one computation, a SolveEvent is the unit of work, and a ScoreBreakdown is the
auditable result.
"""

import enum
import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

DEFAULT_BASE_POINTS = 100
MINIMUM_POINTS_RATIO = 0.3


class Difficulty(str, enum.Enum):
    """Challenge difficulty levels."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"

    @classmethod
    def parse(cls, value: Any) -> Optional["Difficulty"]:
        """
        Parse a difficulty name leniently.

        @param value: Difficulty name or Difficulty member
        @return: Matching Difficulty, None if the value is not recognised
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None


class InsertOutcome(str, enum.Enum):
    """Result of a conditional write to the solve repository."""

    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))


def minimum_points(base_points: int) -> int:
    """Lowest total a correct solve of a challenge can ever be awarded."""
    return round_half_up(base_points * MINIMUM_POINTS_RATIO)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. Unparseable input yields None.

    @param value: datetime or ISO-8601 string
    @return: Aware datetime or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO-8601 UTC string."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class Challenge:
    """Scoring-relevant snapshot of a challenge."""

    challenge_id: str
    base_points: int = DEFAULT_BASE_POINTS
    difficulty: Optional[Difficulty] = Difficulty.MEDIUM
    category: str = ""
    daily: bool = False
    released_at: Optional[datetime] = None
    name: str = ""

    def __post_init__(self) -> None:
        # Snapshots may come from any directory; normalize what the calculators rely on
        object.__setattr__(self, "difficulty", Difficulty.parse(self.difficulty))
        object.__setattr__(self, "released_at", parse_timestamp(self.released_at))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Challenge":
        """
        Build a snapshot from a loosely typed mapping.

        Invalid fields fall back to neutral defaults instead of raising.

        @param row: Mapping with challenge_id, points, difficulty, category, daily, released_at
        @return: Challenge snapshot
        """
        try:
            points = int(row.get("points") or 0)
        except (TypeError, ValueError):
            points = 0
        if points <= 0:
            points = DEFAULT_BASE_POINTS

        category = row.get("category")
        return cls(
            challenge_id=str(row.get("challenge_id", "")),
            base_points=points,
            difficulty=Difficulty.parse(row.get("difficulty")),
            category=category.strip().lower() if isinstance(category, str) else "",
            daily=bool(row.get("daily")),
            released_at=parse_timestamp(row.get("released_at")),
            name=str(row.get("name") or ""),
        )

    @classmethod
    def placeholder(cls, challenge_id: str) -> "Challenge":
        """Neutral snapshot used when the challenge directory has no entry."""
        return cls(challenge_id=challenge_id, difficulty=None)


@dataclass(frozen=True)
class SolveEvent:
    """A verified 'challenge solved by team at time' event."""

    challenge_id: str
    team_id: str
    team_size: int
    solved_at: datetime

    def __post_init__(self) -> None:
        if not self.challenge_id:
            raise ValueError("challenge_id cannot be empty")
        if not self.team_id:
            raise ValueError("team_id cannot be empty")
        if self.team_size < 1:
            raise ValueError("team_size must be at least 1")
        if self.solved_at.tzinfo is None:
            object.__setattr__(
                self, "solved_at", self.solved_at.replace(tzinfo=timezone.utc)
            )


@dataclass(frozen=True)
class FirstBloodResult:
    """Advisory first-blood decision offered before the write."""

    bonus: int
    is_first_blood: bool


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Auditable record of one scoring computation.

    The total can be replayed from the recorded fields alone, see replay_total().
    """

    challenge_id: str
    team_id: str
    base_points: int
    dynamic_points: int
    first_blood_bonus: int
    speed_bonus: int
    team_size_modifier: float
    total_points: int
    is_first_blood: bool
    difficulty: Optional[str]
    category: str
    daily: bool
    solved_at: datetime
    team_size: int
    solve_count: int
    eligible_team_count: int

    def replay_total(self) -> int:
        """Recompute the total from this breakdown's component fields."""
        adjusted = round_half_up(self.dynamic_points * self.team_size_modifier)
        raw = adjusted + self.first_blood_bonus + self.speed_bonus
        return max(raw, minimum_points(self.base_points))

    def without_first_blood(self) -> "ScoreBreakdown":
        """Copy of this breakdown with the first-blood award withdrawn."""
        demoted = replace(self, first_blood_bonus=0, is_first_blood=False)
        return replace(demoted, total_points=demoted.replay_total())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["solved_at"] = format_timestamp(self.solved_at)
        return data
