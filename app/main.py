import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.db import Base, engine
import app.models  # noqa: F401 ensure models are imported so tables are known
from app.api.routes import router as api_router
from app.api.admin import router as admin_router
from app.errors import FieldValidationError, InvalidStateError, NotFoundError, PermissionDeniedError
from app.utils import logger

# create FastAPI instance
app = FastAPI(title="EV Market API")
app.include_router(api_router)
app.include_router(admin_router)


@app.exception_handler(FieldValidationError)
def field_validation_error(request: Request, exc: FieldValidationError):
    logger.warning("Validation failed on %s %s: %s=%s", request.method, request.url.path, exc.field, exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(NotFoundError)
def not_found_error(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
def invalid_state_error(request: Request, exc: InvalidStateError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
def permission_denied_error(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.on_event("startup")
def on_startup_create_tables():
    # migrations are external; this only bootstraps empty databases
    if os.getenv("CREATE_TABLES_ON_STARTUP", "1") == "1":
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")
