"""
Main ScoringSystem class that wires the configuration store, the solve
repository and the web interface together.
"""

import asyncio
from typing import Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .config import ConfigStore
from .database import DatabaseManager
from .web_handlers import WebHandlers


class ScoringSystem:
    """Async scoring service with a JSON API and a scoreboard page."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        web_port: int = 8081,
        db_path: str = "scoring.db",
        config_path: Optional[str] = "scoring_config.json",
    ) -> None:
        self.host = host
        self.web_port = web_port
        self.db_path = db_path

        # Load configuration
        self.config = ConfigStore(config_path)
        # Initialize components
        self.db = DatabaseManager(db_path)
        self.web_handlers = WebHandlers(self.db, self.config)

    async def init_db(self) -> None:
        """
        Initialize the database.

        Creates database tables and performs any necessary setup.
        """
        await self.db.init_db()

    def build_app(self) -> web.Application:
        """
        Build the aiohttp application with all routes and CORS.

        @return: Configured web application
        """
        app = web.Application()

        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        app.router.add_get("/", self.web_handlers.web_index)

        # API routes
        app.router.add_post("/api/solves", self.web_handlers.api_record_solve)
        app.router.add_get("/api/scoring", self.web_handlers.api_scoring_overview)
        app.router.add_post("/api/scoring", self.web_handlers.api_update_scoring)
        app.router.add_get(
            "/api/scoring/{challenge_id}", self.web_handlers.api_challenge_scoring
        )
        app.router.add_get("/api/leaderboard", self.web_handlers.api_leaderboard)

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app_runner = web_runner.AppRunner(self.build_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        print(f"Web server running on http://{host}:{port}")
        return app_runner

    async def run(self) -> None:
        """Run the web server until cancelled."""
        runner = await self.start_web_server()

        print("\nScoring Service Running!")
        print(f"API: http://{self.host}:{self.web_port}/api/scoring")
        print("\nPress Ctrl+C to stop...\n")

        try:
            await asyncio.Event().wait()
        finally:
            print("\nShutting down server...")
            await runner.cleanup()
