#!/usr/bin/env python3
"""
Async CTF scoring service.
Records verified solves, awards dynamic points with first-blood, speed and
team-size adjustments, and serves scoring administration and leaderboard APIs.
"""

import argparse
import asyncio
import os
from pathlib import Path

from ctf_scoring.server import ScoringSystem


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="CTF scoring service with JSON API and scoreboard page",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.getenv("WEB_PORT", "8081")),
        help="Web interface port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DB_PATH", "scoring.db"),
        help="SQLite database file path (env: DB_PATH)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "scoring_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )

    args = parser.parse_args()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return

    system = ScoringSystem(
        host=args.host,
        web_port=args.web_port,
        db_path=args.db,
        config_path=args.config,
    )

    await system.init_db()

    await system.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer interrupted")
