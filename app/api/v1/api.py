from fastapi import APIRouter

from app.api.v1.endpoints import admin, custom_domains, public

api_router = APIRouter()
api_router.include_router(custom_domains.router, tags=["custom-domains"])
api_router.include_router(public.router, prefix="/public", tags=["public"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
