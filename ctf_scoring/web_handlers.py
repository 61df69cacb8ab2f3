"""
Web route handlers for the scoring engine.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .aggregator import ScoreAggregator
from .config import ConfigStore
from .database import DatabaseManager
from .dynamic_points import compute_dynamic_points
from .errors import RepositoryUnavailable
from .models import SolveEvent, parse_timestamp
from .submission import SubmissionService

TEMPLATES_PATH = Path(__file__).parent / "templates"

# Keys an administrator may change through POST /api/scoring
_ADMIN_FIELDS = {
    "dynamicScoring": "dynamic_scoring",
    "teamSizePenalty": "team_size_penalty",
    "speedBonus": "speed_bonus",
    "firstBloodBonus": "first_blood_bonus",
    "maxTeamSize": "max_team_size",
    "difficultyMultipliers": "difficulty_multipliers",
    "categoryMultipliers": "category_multipliers",
}


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: ConfigStore,
        templates_path: Path = TEMPLATES_PATH,
    ) -> None:
        self.db = db_manager
        self.config = config
        self.aggregator = ScoreAggregator(config, db_manager, db_manager)
        self.submissions = SubmissionService(self.aggregator, db_manager)

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_path)),
            autoescape=select_autoescape(["html"]),
            auto_reload=False,  # Disable auto-reload for performance
            cache_size=50,
        )
        self.jinja_env.filters["rank_class"] = format_rank_class

    @staticmethod
    def _parse_solve(body: Dict[str, Any]) -> SolveEvent:
        """
        Build a SolveEvent from a request body.

        @param body: JSON body with challenge_id, team_id, team_size and optional solved_at
        @return: Validated SolveEvent
        @raise ValueError: If a field is missing or malformed
        """
        challenge_id = str(body.get("challenge_id") or "").strip()
        team_id = str(body.get("team_id") or "").strip()

        try:
            team_size = int(body.get("team_size", 1))
        except (TypeError, ValueError):
            raise ValueError("team_size must be an integer")

        if "solved_at" in body and body["solved_at"] is not None:
            solved_at = parse_timestamp(body["solved_at"])
            if solved_at is None:
                raise ValueError("solved_at must be an ISO-8601 timestamp")
        else:
            solved_at = datetime.now(timezone.utc)

        return SolveEvent(
            challenge_id=challenge_id,
            team_id=team_id,
            team_size=team_size,
            solved_at=solved_at,
        )

    async def api_record_solve(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Record a solve whose flag has already been verified.

        @param request: HTTP request with a JSON solve body
        @return: JSON response with awarded points and the score breakdown
        """
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid JSON body", 400)
        if not isinstance(body, dict):
            return _error("Invalid JSON body", 400)

        try:
            event = self._parse_solve(body)
        except ValueError as e:
            return _error(str(e), 400)

        try:
            result = await self.submissions.record_solve(event)
        except RepositoryUnavailable as e:
            print(f"Error recording solve of {event.challenge_id} by {event.team_id}: {e}")
            return _error("Solve store unavailable, please retry", 503)

        return web.json_response(result.to_dict())

    async def api_scoring_overview(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Scoring configuration and solve statistics.

        @param _: Unused request parameter
        @return: JSON response with settings and statistics
        """
        try:
            total_challenges = await self.db.count_challenges()
            distribution = await self.db.get_solve_distribution()
        except RepositoryUnavailable as e:
            print(f"Error loading scoring statistics: {e}")
            return _error("Internal server error", 500)

        return web.json_response(
            {
                "settings": self.config.current_config().to_dict(),
                "statistics": {
                    "totalChallenges": total_challenges,
                    "scoreDistribution": distribution,
                },
            }
        )

    async def api_challenge_scoring(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Scoring details for one challenge.

        @param request: HTTP request object containing the challenge id
        @return: JSON response with the current dynamic value and first solves
        """
        challenge_id = request.match_info["challenge_id"]

        try:
            challenge = await self.db.get_challenge(challenge_id)
            if challenge is None:
                return _error("Unknown challenge id", 404)

            total_solves = await self.db.count_solves(challenge_id)
            eligible_teams = await self.db.count_eligible_teams()
            recent_solves = await self.db.get_challenge_solves(challenge_id, 10)
        except RepositoryUnavailable as e:
            print(f"Error loading scoring for {challenge_id}: {e}")
            return _error("Internal server error", 500)

        dynamic_points = compute_dynamic_points(
            challenge, total_solves, eligible_teams, self.config.current_config()
        )

        return web.json_response(
            {
                "challenge": {
                    "id": challenge.challenge_id,
                    "name": challenge.name,
                    "points": challenge.base_points,
                    "difficulty": challenge.difficulty.value if challenge.difficulty else None,
                    "category": challenge.category,
                    "daily": challenge.daily,
                },
                "scoring": {
                    "basePoints": challenge.base_points,
                    "currentDynamicPoints": dynamic_points,
                    "totalSolves": total_solves,
                },
                "recentSolves": recent_solves,
            }
        )

    async def api_update_scoring(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Update the scoring configuration.

        @param request: HTTP request with camelCase scoring fields
        @return: JSON response with the new settings
        """
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid JSON body", 400)
        if not isinstance(body, dict):
            return _error("Invalid JSON body", 400)

        changes = {
            config_key: body[field]
            for field, config_key in _ADMIN_FIELDS.items()
            if field in body
        }
        if not changes:
            return _error("No scoring fields to update", 400)

        snapshot = self.config.update(changes)
        print(f"Scoring configuration updated: {', '.join(sorted(changes))}")

        return web.json_response(
            {
                "success": True,
                "message": "Scoring configuration updated successfully",
                "settings": snapshot.to_dict(),
            }
        )

    async def api_leaderboard(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for team rankings.

        @param _: Unused request parameter
        @return: JSON response containing ranked teams
        """
        try:
            rankings = await self.db.get_team_rankings()
        except RepositoryUnavailable as e:
            print(f"Error loading leaderboard: {e}")
            return _error("Internal server error", 500)
        return web.json_response({"leaderboard": rankings})

    async def web_index(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Web interface scoreboard page.

        @param _: Unused request parameter
        @return: HTTP response with rendered scoreboard page
        """
        rankings = await self.db.get_team_rankings()

        template = self.jinja_env.get_template("scoreboard.html")
        html = template.render(
            title=self.config.get("ctf_name"),
            rankings=rankings,
            settings=self.config.current_config(),
        )
        return web.Response(text=html, content_type="text/html")


def format_rank_class(rank: Optional[int]) -> str:
    if rank == 1:
        return "gold"
    elif rank == 2:
        return "silver"
    elif rank == 3:
        return "bronze"
    return ""
