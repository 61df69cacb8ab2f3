"""
Tests for the candidate / conditional write / confirm protocol, including
concurrent submissions against a real SQLite store.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import after_release
from ctf_scoring.aggregator import ScoreAggregator
from ctf_scoring.errors import RepositoryUnavailable
from ctf_scoring.models import SolveEvent
from ctf_scoring.submission import SubmissionService


def solve(team_id: str, challenge_id: str = "rsa-baby", minutes: int = 30, team_size: int = 1):
    return SolveEvent(
        challenge_id=challenge_id,
        team_id=team_id,
        team_size=team_size,
        solved_at=after_release(minutes=minutes),
    )


@pytest.fixture
def service(config_store, seeded_db):
    aggregator = ScoreAggregator(config_store, seeded_db, seeded_db)
    return SubmissionService(aggregator, seeded_db)


class TestRecordSolve:
    """Sequential submissions."""

    @pytest.mark.asyncio
    async def test_first_blood_is_confirmed(self, service, seeded_db):
        result = await service.record_solve(solve("team-0"))

        assert result.accepted is True
        assert result.is_first_blood is True
        assert result.awarded == 459
        assert result.breakdown.total_points == 459

        stored = await seeded_db.existing_solve("team-0", "rsa-baby")
        assert stored.is_first_blood is True
        assert stored.points == 459
        assert stored.breakdown["first_blood_bonus"] == 50

    @pytest.mark.asyncio
    async def test_second_team_gets_points_only(self, service):
        await service.record_solve(solve("team-0"))
        result = await service.record_solve(solve("team-1", minutes=45))

        # 1 of 10 teams solved -> 1.5; 100 x 1.5 x 1.6 x 1.2 = 288, plus speed 25
        assert result.is_first_blood is False
        assert result.breakdown.dynamic_points == 288
        assert result.awarded == 313

    @pytest.mark.asyncio
    async def test_duplicate_resubmission_awards_nothing(self, service, seeded_db):
        first = await service.record_solve(solve("team-0"))
        again = await service.record_solve(solve("team-0", minutes=40))

        assert again.duplicate is True
        assert again.accepted is False
        assert again.awarded == 0
        assert again.is_first_blood is False
        assert again.solve_id is None
        assert again.breakdown is None
        assert again.to_dict()["breakdown"] is None
        assert again.to_dict()["awarded"] == 0
        assert await seeded_db.count_solves("rsa-baby") == 1

        stored = await seeded_db.existing_solve("team-0", "rsa-baby")
        assert stored.points == first.awarded
        assert stored.is_first_blood is True

    @pytest.mark.asyncio
    async def test_recorded_breakdown_replays(self, service, seeded_db):
        await service.record_solve(solve("team-0"))
        result = await service.record_solve(solve("team-1", team_size=7, minutes=300))

        assert result.breakdown.replay_total() == result.awarded
        stored = await seeded_db.existing_solve("team-1", "rsa-baby")
        assert stored.points == result.awarded
        assert stored.breakdown["total_points"] == result.awarded

    @pytest.mark.asyncio
    async def test_result_dict(self, service):
        data = (await service.record_solve(solve("team-0"))).to_dict()

        assert data["correct"] is True
        assert data["awarded"] == 459
        assert data["points"] == 100
        assert data["is_first_blood"] is True
        assert data["message"].startswith("Correct! First blood")
        assert data["breakdown"]["speed_bonus"] == 25


class TestConfirmAfterWrite:
    """The pre-write read is advisory; the post-write check is authoritative."""

    @pytest.mark.asyncio
    async def test_stale_candidate_is_demoted(self, config_store, seeded_db):
        aggregator = ScoreAggregator(config_store, seeded_db, seeded_db)
        service = SubmissionService(aggregator, seeded_db)

        # Both candidates are computed before either write lands
        first_candidate = await aggregator.score(solve("team-0"))
        second_candidate = await aggregator.score(solve("team-1"))
        assert first_candidate.candidate_first_blood is True
        assert second_candidate.candidate_first_blood is True

        aggregator.score = AsyncMock(side_effect=[first_candidate, second_candidate])
        winner = await service.record_solve(solve("team-0"))
        loser = await service.record_solve(solve("team-1"))

        assert winner.is_first_blood is True
        assert loser.is_first_blood is False
        assert loser.breakdown.first_blood_bonus == 0
        assert loser.awarded == winner.awarded - 50

    @pytest.mark.asyncio
    async def test_confirm_failure_awards_points_only(self, config_store, seeded_db):
        aggregator = ScoreAggregator(config_store, seeded_db, seeded_db)
        service = SubmissionService(aggregator, seeded_db)
        seeded_db.has_earlier_solve = AsyncMock(side_effect=RepositoryUnavailable("locked"))

        result = await service.record_solve(solve("team-0"))

        assert result.accepted is True
        assert result.is_first_blood is False
        assert result.awarded == 409

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, config_store, seeded_db):
        aggregator = ScoreAggregator(config_store, seeded_db, seeded_db)
        service = SubmissionService(aggregator, seeded_db)
        seeded_db.conditional_insert = AsyncMock(side_effect=RepositoryUnavailable("disk full"))

        with pytest.raises(RepositoryUnavailable):
            await service.record_solve(solve("team-0"))


class TestConcurrentSubmissions:
    """Races against the real store."""

    @pytest.mark.asyncio
    async def test_same_team_many_attempts(self, service, seeded_db):
        results = await asyncio.gather(
            *[service.record_solve(solve("team-0")) for _ in range(10)]
        )

        accepted = [r for r in results if r.accepted]
        assert len(accepted) == 1
        assert sum(1 for r in results if r.duplicate) == 9
        assert sum(r.awarded for r in results) == accepted[0].awarded
        assert await seeded_db.count_solves("rsa-baby") == 1

    @pytest.mark.asyncio
    async def test_teams_racing_in_same_instant(self, service, seeded_db):
        # Identical timestamps: the write order decides first blood
        results = await asyncio.gather(
            *[service.record_solve(solve(f"team-{i}")) for i in range(8)]
        )

        assert all(r.accepted for r in results)
        assert sum(1 for r in results if r.is_first_blood) == 1

        solves = await seeded_db.get_challenge_solves("rsa-baby", 20)
        assert len(solves) == 8
        assert sum(1 for s in solves if s["is_first_blood"]) == 1
        assert solves[0]["is_first_blood"] is True

    @pytest.mark.asyncio
    async def test_mixed_race_across_challenges(self, service, seeded_db):
        attempts = [
            service.record_solve(solve(f"team-{i % 4}", challenge_id))
            for i in range(8)
            for challenge_id in ("rsa-baby", "sqli-basic")
        ]
        results = await asyncio.gather(*attempts)

        assert sum(1 for r in results if r.accepted) == 8
        assert sum(1 for r in results if r.duplicate) == 8
        for challenge_id in ("rsa-baby", "sqli-basic"):
            firsts = [
                r for r in results
                if r.is_first_blood and r.breakdown.challenge_id == challenge_id
            ]
            assert len(firsts) == 1
