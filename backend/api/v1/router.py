"""API v1 router aggregation.

Combines all v1 route modules into a single router.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.v1.routes.github import router as github_router
from api.v1.routes.techstack import router as techstack_router

api_v1_router = APIRouter()

api_v1_router.include_router(techstack_router, tags=["Tech Stack"])
api_v1_router.include_router(github_router, prefix="/github", tags=["GitHub"])
