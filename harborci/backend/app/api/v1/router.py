# backend/app/api/v1/router.py
from fastapi import APIRouter
from app.api.v1 import webhooks, repositories, builds, integrations

api_router = APIRouter()

api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(repositories.router, prefix="/repositories", tags=["repositories"])
api_router.include_router(builds.router, prefix="/builds", tags=["builds"])
api_router.include_router(integrations.router, prefix="/integrations", tags=["integrations"])
