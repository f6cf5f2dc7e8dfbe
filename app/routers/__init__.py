"""API routers for the Good Deed Hub backend."""
from fastapi import APIRouter

from . import apikeys, donations, health, payments, users


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(users.router)
    api_router.include_router(apikeys.router)
    api_router.include_router(payments.router)
    api_router.include_router(donations.router)
    return api_router
