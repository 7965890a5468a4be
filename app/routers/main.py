from fastapi import APIRouter

from app.routers.health import health_router
from app.routers.time_entries import time_entries_router

main_router = APIRouter()

main_router.include_router(
    time_entries_router, prefix="/time-entries", tags=["Time Entries"]
)
main_router.include_router(health_router, prefix="/health", tags=["Health Checks"])
