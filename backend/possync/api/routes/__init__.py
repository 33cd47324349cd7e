"""API routes."""

from fastapi import APIRouter

from possync.api.routes import pos

api_router = APIRouter()

api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
