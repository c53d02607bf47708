"""Entrypoint for the FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from user_manager.api import health, imports, progress
from user_manager.core.config import get_settings

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Bulk user imports from CSV/Excel with background processing and live progress",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(health.router)
app.include_router(imports.router, prefix=settings.api_prefix)
app.include_router(progress.router, prefix=settings.api_prefix)
