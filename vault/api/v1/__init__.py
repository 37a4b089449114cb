"""
API v1 router aggregation.
"""
from fastapi import APIRouter
from vault.api.v1.endpoints import admin, assets, storage, trash

api_router = APIRouter()

# Include storage quota endpoint
api_router.include_router(storage.router)

# Include asset and folder endpoints
api_router.include_router(assets.router)

# Include trash endpoints
api_router.include_router(trash.router)

# Include operator endpoints
api_router.include_router(admin.router)

__all__ = ["api_router"]
