from fastapi import FastAPI, HTTPException, Request, Depends, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from decimal import Decimal
import logging
import structlog
import sys
import time
from contextlib import asynccontextmanager

from models import Account, TransferResponse, ErrorResponse, HealthResponse
from exceptions import AccountsError
from services import AccountsService, get_accounts_service
from repositories import get_account_repository
from notifications import get_notification_service
from config import Settings, get_settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level.upper(),
    )

    if settings.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
rate_limit = f"{settings.rate_limit_per_minute}/minute"

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Accounts API", version=settings.app_version)
    yield
    # Shutdown
    logger.info("Shutting down Accounts API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="API for managing accounts and transferring money between them",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection
def get_service(
    account_repo=Depends(get_account_repository),
    notification_service=Depends(get_notification_service)
) -> AccountsService:
    return get_accounts_service(account_repo, notification_service)

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get system statistics"
)
def health_check(account_repo=Depends(get_account_repository)):
    try:
        return HealthResponse(
            status="healthy",
            accounts_count=account_repo.count()
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(
            status_code=500,
            detail="Health check failed"
        )

# Account endpoints. Plain ``def`` handlers run in the worker thread pool.
@app.post(
    "/v1/accounts",
    response_model=Account,
    status_code=status.HTTP_201_CREATED,
    summary="Create Account",
    responses={
        201: {"description": "Account created"},
        400: {"description": "Duplicate account id"},
        422: {"description": "Validation error"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(rate_limit)
def create_account(
    request: Request,
    account: Account,
    service: AccountsService = Depends(get_service)
):
    logger.info("Creating account", account_id=account.accountId)
    return service.create_account(account)


@app.get(
    "/v1/accounts/{account_id}",
    response_model=Account,
    summary="Get Account",
    responses={404: {"description": "Account not found"}}
)
def get_account(account_id: str, service: AccountsService = Depends(get_service)):
    logger.info("Retrieving account", account_id=account_id)
    return service.get_account(account_id)


@app.post(
    "/v1/accounts/transfer",
    response_model=TransferResponse,
    summary="Transfer Money",
    description="Atomically move an amount from one account to another",
    responses={
        200: {"description": "Transfer completed"},
        400: {"description": "Invalid amount, insufficient funds or same account"},
        404: {"description": "Account not found"},
        429: {"description": "Rate limit exceeded"}
    }
)
@limiter.limit(rate_limit)
def transfer_money(
    request: Request,
    accountFromId: str = Query(..., min_length=1),
    accountToId: str = Query(..., min_length=1),
    amount: Decimal = Query(...),
    service: AccountsService = Depends(get_service)
):
    logger.info(
        "Transfer request received",
        account_from_id=accountFromId,
        account_to_id=accountToId,
        amount=str(amount)
    )
    return service.transfer_money(accountFromId, accountToId, amount)

# Global exception handlers
@app.exception_handler(AccountsError)
async def accounts_exception_handler(request: Request, exc: AccountsError):
    logger.warning(
        "Request rejected",
        error_code=exc.error_code,
        detail=exc.message,
        url=str(request.url)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.message,
            error_code=exc.error_code
        ).model_dump(mode="json")
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ).model_dump(mode="json")
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ).model_dump(mode="json")
    )

# Root endpoint
@app.get("/", include_in_schema=False)
def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
