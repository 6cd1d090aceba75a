from fastapi import APIRouter

from cafe_pos.app.api.v1.endpoints import drawer, pos

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
api_router.include_router(drawer.router, prefix="/drawer", tags=["drawer"])
