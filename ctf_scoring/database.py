"""
Database operations for the scoring engine.
"""

import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from .errors import RepositoryUnavailable
from .models import (
    Challenge,
    InsertOutcome,
    format_timestamp,
    parse_timestamp,
)
from .repository import ChallengeDirectory, SolveRecord, SolveRepository

# SQLite names the columns of the violated unique index in the error message
TEAM_CHALLENGE_UNIQUE = "UNIQUE constraint failed: solves.team_id, solves.challenge_id"
FIRST_BLOOD_UNIQUE = "UNIQUE constraint failed: solves.challenge_id"


def _violates(error: aiosqlite.IntegrityError, constraint: str) -> bool:
    message = str(error)
    return message == constraint or message.startswith(constraint + " ")


class DatabaseManager(SolveRepository, ChallengeDirectory):
    """SQLite-backed solve repository and challenge directory."""

    def __init__(
        self,
        db_path: str,
        timeout: float = 5.0,
    ) -> None:
        self.db_path = db_path
        self.timeout = timeout
        # Simple in-memory cache with TTL
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._cache_ttl = 30  # 30 seconds TTL

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path, timeout=self.timeout)

    def _get_from_cache(
        self,
        cache_key: str,
    ) -> Optional[Any]:
        """
        Get value from cache if valid.

        @param cache_key: String cache key to lookup
        @return: Cached data if valid, None if expired or not found
        """
        if cache_key in self._cache:
            data, timestamp = self._cache[cache_key]

            if time.time() - timestamp < self._cache_ttl:
                return data
            else:
                del self._cache[cache_key]
        return None

    def _set_cache(
        self,
        cache_key: str,
        data: Any,
    ) -> None:
        self._cache[cache_key] = (data, time.time())

    def _invalidate_cache(self) -> None:
        self._cache.clear()

    async def init_db(self) -> None:
        """
        Initialize the SQLite database with schema and indexes.

        The unique (team_id, challenge_id) index is the conditional-write
        primitive; the partial index allows one first blood per challenge.
        """
        async with self._connect() as db:
            # Enable WAL mode for better concurrent access
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    team_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    size INTEGER NOT NULL DEFAULT 1,
                    is_guest INTEGER NOT NULL DEFAULT 0
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS challenges (
                    challenge_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL DEFAULT '',
                    points INTEGER NOT NULL,
                    difficulty TEXT,
                    category TEXT,
                    daily INTEGER NOT NULL DEFAULT 0,
                    released_at TEXT
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS solves (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    team_id TEXT NOT NULL,
                    challenge_id TEXT NOT NULL,
                    solved_at TEXT NOT NULL,
                    points INTEGER NOT NULL,
                    is_first_blood INTEGER NOT NULL DEFAULT 0,
                    breakdown TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_team_challenge
                ON solves(team_id, challenge_id)
            """)
            await db.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_first_blood
                ON solves(challenge_id) WHERE is_first_blood = 1
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_challenge_order
                ON solves(challenge_id, id)
            """)

            await db.commit()

    async def _fetchone(self, query: str, params: tuple = ()) -> Optional[Any]:
        try:
            async with self._connect() as db:
                cursor = await db.execute(query, params)
                return await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            raise RepositoryUnavailable(str(e)) from e

    async def _fetchall(self, query: str, params: tuple = ()) -> List[Any]:
        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(query, params)
                return list(await cursor.fetchall())
        except (aiosqlite.Error, OSError) as e:
            raise RepositoryUnavailable(str(e)) from e

    async def upsert_team(
        self,
        team_id: str,
        name: str,
        size: int = 1,
        is_guest: bool = False,
    ) -> None:
        """
        Create or update a team.

        @param team_id: Team identifier
        @param name: Display name
        @param size: Number of members
        @param is_guest: Guest teams do not count towards solve rates
        """
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO teams (team_id, name, size, is_guest) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(team_id) DO UPDATE SET name = excluded.name, "
                "size = excluded.size, is_guest = excluded.is_guest",
                (team_id, name, size, int(is_guest)),
            )
            await db.commit()
        self._invalidate_cache()

    async def upsert_challenge(self, challenge: Challenge) -> None:
        """
        Create or update a challenge.

        @param challenge: Challenge snapshot to store
        """
        difficulty = challenge.difficulty.value if challenge.difficulty else None
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO challenges "
                "(challenge_id, name, points, difficulty, category, daily, released_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(challenge_id) DO UPDATE SET name = excluded.name, "
                "points = excluded.points, difficulty = excluded.difficulty, "
                "category = excluded.category, daily = excluded.daily, "
                "released_at = excluded.released_at",
                (
                    challenge.challenge_id,
                    challenge.name,
                    challenge.base_points,
                    difficulty,
                    challenge.category,
                    int(challenge.daily),
                    format_timestamp(challenge.released_at),
                ),
            )
            await db.commit()
        self._invalidate_cache()

    async def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        rows = await self._fetchall(
            "SELECT challenge_id, name, points, difficulty, category, daily, released_at "
            "FROM challenges WHERE challenge_id = ?",
            (challenge_id,),
        )
        if not rows:
            return None
        return Challenge.from_row(dict(rows[0]))

    async def count_eligible_teams(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM teams WHERE is_guest = 0")
        return int(row[0]) if row else 0

    async def count_challenges(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM challenges")
        return int(row[0]) if row else 0

    async def count_solves(self, challenge_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) FROM solves WHERE challenge_id = ?", (challenge_id,)
        )
        return int(row[0]) if row else 0

    async def earliest_solve(self, challenge_id: str) -> Optional[datetime]:
        # Acceptance order is insertion order
        row = await self._fetchone(
            "SELECT solved_at FROM solves WHERE challenge_id = ? ORDER BY id ASC LIMIT 1",
            (challenge_id,),
        )
        if row is None:
            return None
        return parse_timestamp(row[0])

    async def existing_solve(
        self,
        team_id: str,
        challenge_id: str,
    ) -> Optional[SolveRecord]:
        rows = await self._fetchall(
            "SELECT id, team_id, challenge_id, solved_at, points, is_first_blood, breakdown "
            "FROM solves WHERE team_id = ? AND challenge_id = ?",
            (team_id, challenge_id),
        )
        if not rows:
            return None
        return self._row_to_record(rows[0])

    @staticmethod
    def _row_to_record(row: Any) -> SolveRecord:
        breakdown = json.loads(row["breakdown"]) if row["breakdown"] else None
        return SolveRecord(
            team_id=row["team_id"],
            challenge_id=row["challenge_id"],
            solved_at=parse_timestamp(row["solved_at"]),
            points=row["points"],
            is_first_blood=bool(row["is_first_blood"]),
            breakdown=breakdown,
            solve_id=row["id"],
        )

    async def conditional_insert(
        self,
        team_id: str,
        challenge_id: str,
        record: SolveRecord,
    ) -> Tuple[InsertOutcome, Optional[int]]:
        """
        Insert a solve only if the team has not solved the challenge yet.

        @param team_id: Solving team
        @param challenge_id: Solved challenge
        @param record: Solve record to store
        @return: (INSERTED, new solve id) or (ALREADY_EXISTS, None)
        """
        breakdown = json.dumps(record.breakdown) if record.breakdown else None

        try:
            async with self._connect() as db:
                try:
                    cursor = await db.execute(
                        "INSERT INTO solves "
                        "(team_id, challenge_id, solved_at, points, is_first_blood, breakdown) "
                        "VALUES (?, ?, ?, ?, 0, ?)",
                        (
                            team_id,
                            challenge_id,
                            format_timestamp(record.solved_at),
                            record.points,
                            breakdown,
                        ),
                    )
                    await db.commit()
                except aiosqlite.IntegrityError as e:
                    await db.rollback()
                    if not _violates(e, TEAM_CHALLENGE_UNIQUE):
                        raise RepositoryUnavailable(f"Solve rejected by store: {e}") from e
                    return InsertOutcome.ALREADY_EXISTS, None

                solve_id = cursor.lastrowid
        except (aiosqlite.Error, OSError) as e:
            raise RepositoryUnavailable(str(e)) from e

        self._invalidate_cache()
        return InsertOutcome.INSERTED, solve_id

    async def has_earlier_solve(self, challenge_id: str, solve_id: int) -> bool:
        row = await self._fetchone(
            "SELECT 1 FROM solves WHERE challenge_id = ? AND id < ? LIMIT 1",
            (challenge_id, solve_id),
        )
        return row is not None

    async def finalize_solve(
        self,
        solve_id: int,
        points: int,
        is_first_blood: bool,
        breakdown: Dict[str, Any],
    ) -> bool:
        """
        Record the authoritative award for an inserted solve.

        @param solve_id: Solve returned by conditional_insert
        @param points: Awarded points
        @param is_first_blood: Confirmed first-blood flag
        @param breakdown: Breakdown dictionary for audit
        @return: False if the store already holds a first blood for the challenge
        """
        try:
            async with self._connect() as db:
                try:
                    await db.execute(
                        "UPDATE solves SET points = ?, is_first_blood = ?, breakdown = ? "
                        "WHERE id = ?",
                        (points, int(is_first_blood), json.dumps(breakdown), solve_id),
                    )
                    await db.commit()
                except aiosqlite.IntegrityError as e:
                    await db.rollback()
                    if not _violates(e, FIRST_BLOOD_UNIQUE):
                        raise RepositoryUnavailable(f"Award rejected by store: {e}") from e
                    return False
        except (aiosqlite.Error, OSError) as e:
            raise RepositoryUnavailable(str(e)) from e

        self._invalidate_cache()
        return True

    async def get_challenge_solves(
        self,
        challenge_id: str,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Get solves of a challenge in acceptance order.

        @param challenge_id: Challenge to list solves for
        @param limit: Maximum number of entries to return (default 10)
        @return: List of dictionaries with team, points, first blood flag and time
        """
        rows = await self._fetchall(
            "SELECT s.team_id, t.name AS team_name, s.points, s.is_first_blood, s.solved_at "
            "FROM solves s LEFT JOIN teams t ON s.team_id = t.team_id "
            "WHERE s.challenge_id = ? ORDER BY s.id ASC LIMIT ?",
            (challenge_id, limit),
        )
        return [
            {
                "team_id": row["team_id"],
                "team_name": row["team_name"] or row["team_id"],
                "points": row["points"],
                "is_first_blood": bool(row["is_first_blood"]),
                "solved_at": row["solved_at"],
            }
            for row in rows
        ]

    async def get_solve_distribution(self) -> Dict[str, int]:
        """
        Count solves per challenge.

        @return: Mapping of challenge id to number of solves
        """
        rows = await self._fetchall(
            "SELECT challenge_id, COUNT(*) AS solves FROM solves GROUP BY challenge_id"
        )
        return {row["challenge_id"]: row["solves"] for row in rows}

    async def get_team_rankings(self) -> List[Dict[str, Any]]:
        """
        Get overall team rankings based on awarded points.

        @return: List of dictionaries with team ranking information
        """
        cached = self._get_from_cache("team_rankings")
        if cached is not None:
            return cached

        rows = await self._fetchall("""
            SELECT
                s.team_id,
                COALESCE(t.name, s.team_id) AS team_name,
                COUNT(*) AS solves,
                SUM(s.points) AS total_points,
                SUM(s.is_first_blood) AS first_bloods,
                MAX(s.solved_at) AS last_solve
            FROM solves s
            LEFT JOIN teams t ON s.team_id = t.team_id
            GROUP BY s.team_id
            ORDER BY total_points DESC, last_solve ASC
        """)

        rankings = []
        current_rank = 0
        previous_points = None

        for position, row in enumerate(rows, 1):
            # Equal totals share a rank
            if row["total_points"] != previous_points:
                current_rank = position
            previous_points = row["total_points"]

            rankings.append(
                {
                    "rank": current_rank,
                    "team_id": row["team_id"],
                    "team": row["team_name"],
                    "score": row["total_points"],
                    "solves": row["solves"],
                    "first_bloods": row["first_bloods"],
                    "last_solve": row["last_solve"],
                }
            )

        self._set_cache("team_rankings", rankings)
        return rankings


