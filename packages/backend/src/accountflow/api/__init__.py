"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health is open. The profile router authenticates per route
(it needs the resolved Identity as a value, not just as a gate), so it
is included without router-level dependencies.
"""

from fastapi import APIRouter

from accountflow.api.health import router as health_router
from accountflow.api.profile import router as profile_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(profile_router, tags=["profile"])
