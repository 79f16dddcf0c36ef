from fastapi import APIRouter

from app.api.routes import auth, billing, forms, health, integrations, public, submissions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(forms.router, prefix="/forms", tags=["forms"])
api_router.include_router(submissions.router, prefix="/forms", tags=["submissions"])
api_router.include_router(public.router, prefix="/public", tags=["public"])
api_router.include_router(billing.router, tags=["billing"])
api_router.include_router(integrations.router, tags=["integrations"])
