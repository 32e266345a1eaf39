from fastapi import APIRouter

from schoolhub.modules.auth import router as auth_router
from schoolhub.modules.relationships import router as relationships_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(
    relationships_router,
    prefix="/parent-verification",
    tags=["Parent Verification"],
)
