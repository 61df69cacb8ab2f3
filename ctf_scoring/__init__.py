"""
CTF Scoring - scoring engine for Capture The Flag competitions.

This package provides:
- Dynamic, rarity-based challenge points with difficulty, category and daily multipliers
- First-blood bonus settled by the solve store's conditional write
- Speed bonus and team-size penalty
- Auditable score breakdowns
- SQLite solve repository and an aiohttp API for recording solves and tuning scoring
"""

from .aggregator import ScoreAggregator, ScoreResult, ScoringState
from .config import ConfigStore, ScoringConfig
from .database import DatabaseManager
from .dynamic_points import compute_dynamic_points
from .first_blood import FirstBloodResolver
from .models import Challenge, Difficulty, ScoreBreakdown, SolveEvent
from .server import ScoringSystem
from .speed_bonus import compute_speed_bonus
from .submission import SubmissionResult, SubmissionService
from .team_size import compute_team_size_modifier

__version__ = "1.0.0"
__author__ = "CTF Scoring Contributors"

__all__ = [
    "Challenge",
    "ConfigStore",
    "DatabaseManager",
    "Difficulty",
    "FirstBloodResolver",
    "ScoreAggregator",
    "ScoreBreakdown",
    "ScoreResult",
    "ScoringConfig",
    "ScoringState",
    "ScoringSystem",
    "SolveEvent",
    "SubmissionResult",
    "SubmissionService",
    "compute_dynamic_points",
    "compute_speed_bonus",
    "compute_team_size_modifier",
]
