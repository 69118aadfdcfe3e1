"""
Ghar Agent Backend - Main FastAPI Application.

This is the entry point for the Ghar Agent API.
It exposes a conversational property-search assistant for Nepal that
reasons step by step and calls web search, maps, calculator, market
analysis and listing-database tools.

Run with:
    uvicorn app.main:app --reload
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import acreate_client

from app.agents.agent import PropertyAgent
from app.agents.tools import ToolRegistry
from app.api.v1.chat import router as chat_router
from app.config import Settings, get_settings
from app.constants import API_TITLE, API_VERSION
from app.logging_config import setup_logging
from app.middleware import RequestContextMiddleware
from app.services.llm import OpenAICompletionProvider
from app.services.maps import GooglePlacesService
from app.services.memory_manager import MemoryManager
from app.services.memory_store import InMemoryMemoryRepository, MemoryRepository, SupabaseMemoryRepository
from app.services.web_search import SerpApiSearchService

# Get settings before logging setup so we know the debug flag
settings = get_settings()

# Propagate LangSmith settings into os.environ so the SDK can find them.
# pydantic-settings reads .env into the Settings model but does NOT inject
# values into os.environ, which is where langsmith and openai_client.py look.
if settings.langchain_tracing_v2 and settings.langsmith_api_key:
    os.environ["LANGCHAIN_TRACING_V2"] = "true"
    os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
    os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project

# Configure logging
setup_logging(settings.debug)

logger = structlog.get_logger(__name__)


async def build_memory_repository(app_settings: Settings) -> MemoryRepository:
    """Supabase when configured and reachable, otherwise an in-process store."""
    if app_settings.supabase_url and app_settings.supabase_secret_key:
        try:
            client = await acreate_client(app_settings.supabase_url, app_settings.supabase_secret_key)
            logger.info("supabase_configured")
            return SupabaseMemoryRepository(
                client,
                sessions_table=app_settings.memory.sessions_table,
                preferences_table=app_settings.memory.preferences_table,
            )
        except Exception as e:
            logger.warning("supabase_init_failed", error=str(e))
    else:
        logger.warning("supabase_not_configured", detail="Conversation memory is process-local")
    return InMemoryMemoryRepository()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler for startup and shutdown."""
    logger.info("api_startup", cors_origins=settings.cors_origins)

    if not settings.serpapi_api_key:
        logger.warning("serpapi_key_missing", detail="Search tool will report failures")
    if not settings.google_maps_api_key:
        logger.warning("google_maps_key_missing", detail="Maps tool will use fallback data")

    repository = await build_memory_repository(settings)

    # Create services once at startup
    completions = OpenAICompletionProvider(settings.openai_api_key, settings.agent)
    web_search = SerpApiSearchService(settings.serpapi_api_key, settings.search)
    places = GooglePlacesService(settings.google_maps_api_key, settings.maps)
    tools = ToolRegistry(
        completions,
        web_search=web_search,
        places=places if settings.google_maps_api_key else None,
        agent_config=settings.agent,
        search_config=settings.search,
        maps_config=settings.maps,
    )
    memory = MemoryManager(repository, settings.memory)

    _app.state.memory = memory
    _app.state.tools = tools
    _app.state.agent = PropertyAgent(completions, tools, memory=memory, agent_config=settings.agent)

    logger.info("services_initialized", store=type(repository).__name__)

    yield

    await web_search.close()
    await places.close()
    logger.info("api_shutdown")


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description=(
        "Conversational real estate assistant for Nepal. Answers property "
        "search, rental and investment questions with step-by-step reasoning "
        "over listings, maps, web search and market analysis."
    ),
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Request context middleware must come before CORS so every response gets
# the X-Request-ID header (including preflight OPTIONS responses).
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(chat_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "description": "Conversational property search and investment assistant for Nepal",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
