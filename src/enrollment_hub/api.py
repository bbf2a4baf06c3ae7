from fastapi import APIRouter

from enrollment_hub.modules.classes.router import router as classes_router
from enrollment_hub.modules.enrollments import realtime_router
from enrollment_hub.modules.enrollments import router as enrollments_router

api_router = APIRouter()

api_router.include_router(classes_router, prefix="/classes", tags=["Classes"])

api_router.include_router(enrollments_router, prefix="/enrollments", tags=["Enrollments"])

api_router.include_router(realtime_router, tags=["Realtime"])
