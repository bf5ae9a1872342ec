"""FastAPI main application."""

import logging

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import settings
from ..core.context import TacticalMapContext
from ..core.errors import InvalidSettingsError
from ..core.generator import GenerationSettings, MapGenerator
from ..core.serialization import serialize_map
from ..utils.random import Seed

# Configure logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Battlemap Generator API",
    description="Deterministic layered tactical battlemap generator",
    version="0.1.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

generator = MapGenerator()


@app.exception_handler(InvalidSettingsError)
async def invalid_settings_handler(request: Request, exc: InvalidSettingsError):
    logger.warning("Rejected generation request", code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=400,
        content={"code": exc.code, "message": exc.message, "suggestions": exc.suggestions},
    )


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Battlemap Generator API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/maps/generate")
def generate_map(request: GenerationSettings, include_plants: bool = False):
    """
    Generate a battlemap synchronously.

    Invalid settings are rejected with HTTP 400 before generation starts.
    """
    logger.info("Map generation requested", width=request.width, height=request.height)
    result = generator.generate(request)
    return serialize_map(result, include_plants=include_plants)


@app.get("/context/{seed}")
async def get_context(seed: str):
    """Seed-derived tactical context."""
    value = int(seed) if seed.lstrip("-").isdigit() else seed
    normalized = Seed.from_value(value)
    context = TacticalMapContext.from_seed(normalized)
    return {
        "seed": normalized.value,
        "biome": context.biome.value,
        "elevation": context.elevation.value,
        "hydrology": context.hydrology.value,
        "development": context.development.value,
        "season": context.season.value,
        "description": context.description(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
