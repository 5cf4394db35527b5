"""API routers."""

from app.routers.analysis import router as analysis_router
from app.routers.auth import router as auth_router
from app.routers.groups import router as groups_router
from app.routers.recordings import router as recordings_router
from app.routers.transcription import router as transcription_router

__all__ = ["auth_router", "recordings_router", "transcription_router", "analysis_router", "groups_router"]
