"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import batches, policy

api_router = APIRouter()

api_router.include_router(
    batches.router,
    prefix="/batches",
    tags=["batches"]
)

api_router.include_router(
    policy.router,
    prefix="/policy",
    tags=["policy"]
)
