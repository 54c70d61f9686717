from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledger.api.endpoints import transactions
from ledger.config import settings
from ledger.core.exceptions import LedgerError, error_response
from ledger.core.logging import app_logger
from ledger.core.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SessionMiddleware,
)
from ledger.database import create_engine, create_session_factory, ensure_schema
from ledger.services.rate_limiter import RateLimiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
    try:
        # FatalInitError propagates and aborts startup
        await ensure_schema(engine)
        app.state.session_factory = create_session_factory(engine)
        app_logger.info(f"{settings.PROJECT_NAME} ready on port {settings.PORT}")
        yield
    finally:
        await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)
app.state.rate_limiter = RateLimiter()

# Decode identity provider session tokens (runs fourth)
app.add_middleware(SessionMiddleware)

# Admission check against the quota counter (runs third)
app.add_middleware(RateLimitMiddleware)

# Request logging (runs second, after CORS)
app.add_middleware(RequestLoggingMiddleware)

# Configure CORS (outermost, wraps the rate limit responses)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    transactions.router, prefix="/api/transactions", tags=["transactions"]
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "details": [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    app_logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(LedgerError())


@app.get("/")
async def root():
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
