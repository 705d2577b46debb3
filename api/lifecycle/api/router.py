from fastapi import APIRouter

from lifecycle.api.routes import health, records, transitions

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(transitions.router, tags=["lifecycle"])
api_router.include_router(records.router, tags=["records"])
