# signup_service/api/v1/api.py

from fastapi import APIRouter
from signup_service.api.v1.endpoints import signups, instances, notifications

# This is the main router for the v1 API.
api_router = APIRouter()

api_router.include_router(signups.router)
api_router.include_router(instances.router)
api_router.include_router(notifications.router)
