"""streamgate - Main FastAPI Application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from streamgate import __version__
from streamgate.config import settings
from streamgate.routes import crawl, health, logs, relay, resolve
from streamgate.services import logger
from streamgate.services.context import ServiceContext
from streamgate.utils.exceptions import RangeNotSatisfiableError, StreamGateError, get_error_response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Tests may install their own context (mock transports) before startup
    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = ServiceContext.create(settings)

    context = app.state.context
    logger.info(
        f"streamgate {__version__} started on port {settings.PORT}",
        "general",
        {"profiles": [p.name for p in context.profiles], "environment": settings.ENVIRONMENT},
    )

    yield

    logger.info("streamgate shutting down", "general")
    if owns_context:
        await context.aclose()
        app.state.context = None


app = FastAPI(
    title="streamgate",
    description="Stream URL resolution, listing crawl and ranged CDN relay",
    version=__version__,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# Browser players fetch the relay cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "DELETE"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"],
)


@app.exception_handler(StreamGateError)
async def streamgate_error_handler(request: Request, exc: StreamGateError):
    """Render known errors as `{error, error_code, message, retryable}`."""
    logger.warn(
        f"{request.url.path} failed: {exc.error_code}: {exc.message[:200]}",
        "api",
        {"status": exc.status_code},
    )
    headers = None
    if isinstance(exc, RangeNotSatisfiableError):
        headers = {"Content-Range": f"bytes */{exc.total}"}
    return JSONResponse(status_code=exc.status_code, content=get_error_response(exc), headers=headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.url.path} crashed: {type(exc).__name__}: {str(exc)[:200]}", "api")
    return JSONResponse(status_code=500, content=get_error_response(exc))


app.include_router(resolve.router)
app.include_router(crawl.router)
app.include_router(relay.router)
app.include_router(health.router)
app.include_router(logs.router)


@app.get("/", include_in_schema=False)
async def root():
    """Service banner."""
    return {"service": "streamgate", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "streamgate.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
