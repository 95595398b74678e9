from typing import Optional
import logging

from fastapi import FastAPI, Query

from mealweek.infra.Runtime import Runtime

# Routers
from mealweek.api.routes import weeks, sync, data, migration

# Logging
logger = logging.getLogger("mealweek_app")


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the API around a runtime (a default one wired from config when none is given)."""
    app = FastAPI(title="Meal Week Cycle & Sync API")
    app.state.runtime = runtime or Runtime()

    app.include_router(weeks.router)
    app.include_router(sync.router)
    app.include_router(data.router)
    app.include_router(migration.router)

    @app.on_event("startup")
    async def _startup_runtime():
        """Load data and start the sync engine and web observers."""
        await app.state.runtime.start()
        logger.info("Runtime started; sync status %s", app.state.runtime.sync.status.to_dict())

    @app.on_event("shutdown")
    async def _shutdown_runtime():
        await app.state.runtime.stop()

    @app.get('/api/events')
    def api_events(
        since: Optional[int] = Query(default=None, description="Return events with id greater than this value")
    ):
        """
        Return recent notifications (failed saves, lock changes, migrations).

        Client polling strategy:
            1. First call without 'since' to load the current backlog.
            2. Store 'next_cursor' from the response.
            3. Subsequent polls: /api/events?since=<next_cursor>
        """
        return app.state.runtime.feed.get_events(since)

    return app


app = create_app()
