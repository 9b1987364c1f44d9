"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and the profile store is reachable. Answers even while the store is
still starting up (status "starting"), so orchestrators can tell
"booting" from "broken".
"""

from fastapi import APIRouter
from sqlalchemy import text

from accountflow import __version__
from accountflow.db.engine import get_engine, is_ready

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and store connectivity."""
    checks = {"server": "ok", "version": __version__}

    if not is_ready():
        return {"status": "starting", **checks, "store": "not initialized"}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["store"] = "ok"
    except Exception as e:
        checks["store"] = f"error: {e}"

    status = "healthy" if checks["store"] == "ok" else "degraded"
    return {"status": status, **checks}
