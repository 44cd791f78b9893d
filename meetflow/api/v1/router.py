from fastapi import APIRouter

from meetflow.api.v1.endpoints import meetings, scheduler

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(meetings.router)
api_router.include_router(scheduler.router)
