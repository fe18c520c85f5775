"""Central API router aggregating all domain routers."""

from fastapi import APIRouter

from app.health.router import router as health_router
from app.profile.router import router as profile_router
from app.verification.router import router as verification_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(profile_router)
api_router.include_router(verification_router)
