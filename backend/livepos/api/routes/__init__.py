"""API routes."""

from fastapi import APIRouter

from livepos.api.routes import auth, websocket_endpoints

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(websocket_endpoints.router, tags=["websocket"])
