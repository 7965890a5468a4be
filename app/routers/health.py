from fastapi import APIRouter, Request
from app.config.settings import settings
from app.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and basic system information
    """
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "time_zone": settings.TIME_ZONE,
        },
        message="Service is running",
    )
