import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .bootstrap import create_or_update_admin
from .config import get_settings
from .core.logging import setup_logging
from .database import create_tables
from .exceptions import ClinicError
from .limiter import limiter
from .routers import (
    appointments, auth, clinical_evolutions, clinical_histories, form_schemas,
    guest, health, logs, patients, prescriptions, users,
)
from .security import add_security_headers

settings = get_settings()

# --- Logging Configuration ---
setup_logging(settings.log_level, json_output=settings.log_json)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
)

# Rate limiting for the login endpoints
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error_type": "rate_limited", "message": f"Rate limit exceeded: {exc.detail}"},
    )


@app.on_event("startup")
def on_startup():
    create_tables()
    create_or_update_admin()
    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment}).")


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    return add_security_headers(response)


# ==================== ERROR BODIES ====================
# Every error leaves the API as {error_type, message, ...}.

HTTP_ERROR_TYPES = {
    400: "bad_request",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
}


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = loc[-1] if loc else "request"
        message = str(error.get("msg", "Invalid value."))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    first = next(iter(errors.values()))[0] if errors else "The given data was invalid."
    return JSONResponse(
        status_code=422,
        content={"error_type": "validation_error", "message": first, "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": HTTP_ERROR_TYPES.get(exc.status_code, "error"),
            "message": str(exc.detail),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error_type": "server_error", "message": "An unexpected error occurred."},
    )


app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(clinical_histories.router, prefix="/api/v1")
app.include_router(clinical_evolutions.router, prefix="/api/v1")
app.include_router(prescriptions.router, prefix="/api/v1")
app.include_router(guest.router, prefix="/api/v1")
app.include_router(form_schemas.router, prefix="/api/v1")
app.include_router(logs.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


@app.post("/token", include_in_schema=False)
async def token_redirect():
    return RedirectResponse(url="/api/v1/auth/token", status_code=307)


if __name__ == "__main__":
    uvicorn.run("opticlinic.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
