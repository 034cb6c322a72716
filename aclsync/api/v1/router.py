"""
API v1 router.
"""
from fastapi import APIRouter

from aclsync.api.v1.endpoints import acls, health

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(acls.router, prefix="/acls", tags=["acls"])
