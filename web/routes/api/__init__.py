"""
API routes split by domain.

Each sub-module defines its own APIRouter which is composed
into the top-level router exposed by this package.
"""
from fastapi import APIRouter

from .health import router as health_router
from .admin import router as admin_router
from .dashboard import router as dashboard_router
from .menu import router as menu_router
from .inventory import router as inventory_router
from .nfe import router as nfe_router
from .payments import router as payments_router
from .drivers import router as drivers_router
from .credits import router as credits_router

router = APIRouter(tags=["api"])

router.include_router(health_router)
router.include_router(admin_router)
router.include_router(dashboard_router)
router.include_router(menu_router)
router.include_router(inventory_router)
router.include_router(nfe_router)
router.include_router(payments_router)
router.include_router(drivers_router)
router.include_router(credits_router)
