from fastapi import APIRouter

from app.routers.community import community_router
from app.routers.shared import shared_router

main_router = APIRouter()
main_router.include_router(community_router, prefix="/communities")
main_router.include_router(shared_router)
