from fastapi import APIRouter

from app.api.v1.admin import router as admin_router
from app.api.v1.brands import router as brands_router
from app.api.v1.processing_jobs import router as processing_jobs_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(processing_jobs_router)
api_v1_router.include_router(brands_router)
api_v1_router.include_router(admin_router)
