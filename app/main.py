# app/main.py
from __future__ import annotations

from fastapi import APIRouter, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import clear_request_id, new_request_id, set_request_id
from services import db_service
from services.cache_service import build_cache_service

from api.routers.events import router as events_router

configure_logging(service_name="api")

app = FastAPI(
    title="Event & Speaker Acquisition Pipeline",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


@app.on_event("startup")
async def _startup_cache() -> None:
    app.state.cache = build_cache_service()
    logger.info("cache_ready", durable="postgres" if db_service.is_configured() else "memory")


@app.on_event("shutdown")
async def _shutdown_cleanup() -> None:
    await db_service.close_pool()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = new_request_id(request.headers.get("x-request-id"))
        set_request_id(req_id)

        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


# Last added runs outermost (request id wraps CORS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
    allow_headers=["*"],
    expose_headers=["Content-Length", "X-Request-Id"],
)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=dict(exc.headers or {}))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# --- Health endpoints ---
@app.get("/")
async def root():
    return {"ok": True, "app": "Event Acquisition Pipeline", "message": "Up & running"}


@app.head("/")
async def root_head():
    return Response(status_code=200)


@app.get("/health")
async def health():
    return {"ok": True, "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}


# --- API v1 router ---
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(events_router)
app.include_router(api_v1_router)

logger.info("routers_registered", routers=["api_v1(events)"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
