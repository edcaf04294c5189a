import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from filtro_api.config import get_settings
from filtro_api.database import engine, Base
from filtro_api.exceptions import ApiError
from filtro_api import models  # noqa: F401  (registers tables on Base.metadata)
from filtro_api.routers import admin, oauth, portal, protected, webhooks

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create missing tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("filtroclientes-api started")
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="Filtroclientes API",
    description="OAuth2 token issuance, per-route authorization and clinical study matching for intake submissions",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Tokens and patient data must never be cached by intermediaries."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"
        return response


app.add_middleware(NoCacheMiddleware)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "invalid_request"})


app.include_router(oauth.router, prefix="/oauth", tags=["OAuth"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(portal.router, prefix="/portal", tags=["Portal"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(protected.router, prefix="/api", tags=["Protected"])


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "filtroclientes-api"}
