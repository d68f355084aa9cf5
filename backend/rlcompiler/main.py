import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import api_router
from .config import CompilerSettings
from .models.pattern_catalog import default_templates
from .services.pattern_library import PatternLibrary

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def load_pattern_library(settings: CompilerSettings) -> PatternLibrary:
    if settings.pattern_file:
        return PatternLibrary.from_file(settings.pattern_file)
    return PatternLibrary.load(default_templates())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the read-only compiler state once; requests only read it.
    """
    logger.info("Starting RL blueprint compiler...")
    settings = CompilerSettings.from_env()
    app.state.settings = settings
    app.state.pattern_library = load_pattern_library(settings)
    logger.info("Loaded %d pattern templates", len(app.state.pattern_library))

    yield

    logger.info("Shutting down RL blueprint compiler...")


app = FastAPI(
    title="RL Compiler",
    description="Compiles natural-language software requirements into a compact RL specification and a laid-out, render-ready architecture Blueprint.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"^http:\/\/localhost:\d+$|^http:\/\/127\.0\.0\.1:\d+$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router)
