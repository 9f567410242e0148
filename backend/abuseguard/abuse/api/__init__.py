"""HTTP routers for the abuse engine."""

from fastapi import APIRouter

from abuseguard.abuse.api import admin

router = APIRouter()
router.include_router(admin.router)

__all__ = ["router"]
