import asyncio
from contextlib import asynccontextmanager, suppress
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI, HTTPException

from omniconvert import __version__
from omniconvert.config import EncoderConfig, RenderConfig, SessionConfig
from omniconvert.extract import ContentExtractor, GeminiContentExtractor
from omniconvert.orchestrator import SessionRegistry
from omniconvert.router import router as conversion_router
from omniconvert.utils.http_client import ServiceType, get_http_client_factory, lifespan_http_clients
from omniconvert.utils.logging_config import get_logger, setup_logging
from omniconvert.utils.temp_file_manager import get_temp_manager

setup_logging()
logger = get_logger()

# Distributions the conversion pipeline needs at runtime
LIBRARY_DEPENDENCIES = {
    "beautifulsoup": "beautifulsoup4",
    "mammoth": "mammoth",
    "pillow": "Pillow",
    "reportlab": "reportlab",
}


def create_app(
    extractor: Optional[ContentExtractor] = None,
    render_config: Optional[RenderConfig] = None,
    encoder_config: Optional[EncoderConfig] = None,
    temp_dir: Optional[str] = None,
    session_config: Optional[SessionConfig] = None
) -> FastAPI:
    """
    Build the OmniConvert application.

    Args:
        extractor: Content extractor to use (Gemini, configured from the
            environment, when omitted)
        render_config: Render surface settings
        encoder_config: Encoder quality settings
        temp_dir: Base directory for stored results
        session_config: Session store limits (idle TTL, maximum sessions)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager with centralized HTTP client setup."""
        if extractor is None:
            factory = get_http_client_factory()
            app.state.extractor = GeminiContentExtractor(client=factory.create_client(ServiceType.EXTRACTOR))
        else:
            app.state.extractor = extractor

        temp_manager = get_temp_manager("results", temp_dir) if temp_dir else get_temp_manager("results")
        app.state.registry = SessionRegistry(
            app.state.extractor,
            render_config=render_config,
            encoder_config=encoder_config,
            temp_manager=temp_manager,
            session_config=session_config,
        )
        sweeper = asyncio.create_task(sweep_sessions(app.state.registry))
        logger.info(f"OmniConvert {__version__} started with the {app.state.extractor.name} extractor")

        async with lifespan_http_clients():
            try:
                yield
            finally:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
                app.state.registry.close_all()
                await app.state.extractor.aclose()
                logger.info("OmniConvert stopped")

    application = FastAPI(title="OmniConvert", version=__version__, lifespan=lifespan)
    application.include_router(conversion_router)
    application.add_api_route("/ping", ping, methods=["GET"])
    application.add_api_route("/{library}/ping", ping_library, methods=["GET"])
    return application


async def sweep_sessions(registry: SessionRegistry):
    """Evict idle sessions periodically for the lifetime of the app."""
    interval = registry.session_config.sweep_interval
    if not interval or interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        registry.evict_expired()


async def check_library_health(distribution: str) -> tuple[bool, str]:
    """
    Check that a runtime dependency is installed.

    Returns:
        tuple: (is_healthy: bool, version or "missing")
    """
    try:
        return True, version(distribution)
    except PackageNotFoundError:
        return False, "missing"


async def ping():
    """Ping endpoint that includes the health of each conversion library."""
    response = {"success": True, "data": "PONG!", "version": __version__}
    for name, distribution in LIBRARY_DEPENDENCIES.items():
        healthy, detail = await check_library_health(distribution)
        response[name] = {
            "status": "healthy" if healthy else "unhealthy",
            "version": detail
        }
    return response


async def ping_library(library: str):
    """Check a single conversion library."""
    distribution = LIBRARY_DEPENDENCIES.get(library.lower())
    if distribution is None:
        raise HTTPException(status_code=404, detail=f"Unknown library: {library}")

    healthy, detail = await check_library_health(distribution)
    if healthy:
        return {"success": True, "data": "PONG!", "service": library, "version": detail}
    raise HTTPException(status_code=503, detail=f"{library} unavailable ({detail})")


app = create_app()
