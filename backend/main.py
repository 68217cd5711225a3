import sys
import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from dashboard.api.routes import router
from dashboard.api.metrics import router as metrics_router
from dashboard.core.capabilities import get_capabilities
from dashboard.core.config import get_settings
from dashboard.core.errors import ErrorCodes, get_error_response
from dashboard.core.logging import configure_logging
from dashboard.core.middleware import CorrelationIDMiddleware, TimeoutMiddleware

# Load environment variables
load_dotenv()

# Load and validate configuration
try:
    settings = get_settings()
except Exception as e:
    logging.basicConfig(level=logging.ERROR)
    logging.getLogger(__name__).error(f"Failed to load configuration: {e}")
    sys.exit(1)

configure_logging(settings)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Forest Dashboard API",
    description="Load tabular data, inspect it and render charts including forest plots",
    version="1.0.0"
)

app.state.limiter = limiter
app.state.settings = settings


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded with structured error response."""
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    error_info = get_error_response(ErrorCodes.RATE_LIMIT_EXCEEDED)
    error_info['correlation_id'] = correlation_id
    return JSONResponse(
        status_code=429,
        content=error_info,
        headers={"Retry-After": "60", "X-Correlation-ID": correlation_id}
    )

app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Last added is first executed
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"]
)
app.add_middleware(CorrelationIDMiddleware)

app.include_router(router, prefix="/api")
app.include_router(metrics_router, prefix="/api")

logger.info(f"CORS allowed origins: {settings.allowed_origins_list}")
logger.info(f"Forest plot capability: {get_capabilities().forest_plot}")


@app.get("/")
async def root():
    return {"message": "Forest Dashboard API is running"}

logger.info("Application started successfully")
