"""
FastAPI dependencies for the shared, load-once compiler state.

The PatternLibrary and settings are built in the application lifespan and
stored on ``app.state``; endpoints only ever read them.
"""

from fastapi import HTTPException, Request

from rlcompiler.config import CompilerSettings
from rlcompiler.services.pattern_library import PatternLibrary


def get_pattern_library(request: Request) -> PatternLibrary:
    library = getattr(request.app.state, "pattern_library", None)
    if library is None:
        raise HTTPException(status_code=503, detail="Pattern library not loaded")
    return library


def get_settings(request: Request) -> CompilerSettings:
    return getattr(request.app.state, "settings", None) or CompilerSettings()
