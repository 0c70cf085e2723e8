import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bgv_otp.routers import otp, auth
from bgv_otp.core.redis import RedisClient
from bgv_otp.core.config import settings
from bgv_otp.core.exceptions import OTPError, RateLimited, UpstreamUnavailable

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Startup and shutdown events"""
    print("\n" + "=" * 50)
    print("  Starting BGV OTP API...")
    print("=" * 50)
    print(f"  Environment: {settings.APP_ENV}")
    print("-" * 50)

    try:
        from sqlalchemy import text
        from bgv_otp.core.database import engine, init_db
        init_db()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print(f"  [OK]   Database  ({engine.dialect.name})")
    except SQLAlchemyError as e:
        print(f"  [FAIL] Database  - {e}")

    if settings.REDIS_HOST:
        try:
            RedisClient.get_client()
            print(f"  [OK]   Redis     ({settings.REDIS_HOST}:{settings.REDIS_PORT})")
        except Exception as e:
            print(f"  [FAIL] Redis     - {e}")
    else:
        print("  [SKIP] Redis     (REDIS_HOST not set, throttling disabled)")

    from bgv_otp.core.sms import get_sms_gateway
    gateway = get_sms_gateway()
    if gateway.is_configured():
        print(f"  [OK]   SMS       ({gateway.name})")
    else:
        print(f"  [FAIL] SMS       ({gateway.name} credentials not configured)")

    print("-" * 50)
    print("  BGV OTP API is ready!")
    print("=" * 50 + "\n")
    yield

    print("\nShutting down BGV OTP API...")
    RedisClient.close()


is_production = settings.APP_ENV == "production"

app = FastAPI(
    title="BGV OTP API",
    lifespan=lifespan,
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_origins_list != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@app.exception_handler(OTPError)
async def otp_error_handler(request: Request, exc: OTPError):
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return _error_response(exc.status_code, exc.message, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "missing" or err.get("input") == "" for err in errors):
        return _error_response(400, "Missing required fields")
    fields = ", ".join(str(err["loc"][-1]) for err in errors if err.get("loc"))
    return _error_response(400, f"Invalid value for: {fields}")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s: %s", request.url.path, exc)
    return _error_response(UpstreamUnavailable.status_code, UpstreamUnavailable.default_message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _error_response(500, "Internal server error")


@app.get("/")
def health_check():
    return {"status": True}


app.include_router(otp.router)
app.include_router(auth.router)
