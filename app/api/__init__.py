"""API routes, mounted under settings.API_PREFIX (/api)."""

from fastapi import APIRouter

from app.api import admin, annonces, auth, health

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(annonces.router, prefix="/annonces", tags=["annonces"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
