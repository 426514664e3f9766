from fastapi import APIRouter

from caddate.api.routes import location

api_router = APIRouter(prefix="/v1")

api_router.include_router(location.router)
