from contextlib import asynccontextmanager

import pydantic
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from telem import config
from telem.authz import ForbiddenError
from telem.db.core import init_db, NotFoundError, ConflictError, StorageError
from telem.logging_config import setup_logging, get_logger
from telem.routers.auth import router as auth_router
from telem.routers.users import router as users_router
from telem.routers.calculators import router as calculators_router
from telem.routers.properties import router as properties_router
from telem.routers.investments import router as investments_router
from telem.routers.analyses import router as analyses_router
from telem.routers.settings import router as settings_router
from telem.routers.dashboard import router as dashboard_router

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if config.CREATE_TABLES_ON_STARTUP:
        init_db()
        logger.info("Database tables ensured")
    logger.info(f"Telem API started (env={config.ENV})")
    yield


app = FastAPI(title="Telem Advisor API", lifespan=lifespan)


# ===== ERROR MAPPING =====

def _error_list(errors):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation error", "errors": _error_list(exc.errors())},
    )


@app.exception_handler(pydantic.ValidationError)
async def model_validation_handler(_: Request, exc: pydantic.ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation error", "errors": _error_list(exc.errors())},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": str(exc)})


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"message": exc.message, "disallowedFields": exc.disallowed_fields},
    )


@app.exception_handler(ConflictError)
async def conflict_handler(_: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"message": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path}: {exc}", exc_info=exc.__cause__ or exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Storage error"})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


# ===== ROUTES =====

for api_router in (
    auth_router,
    users_router,
    calculators_router,
    properties_router,
    investments_router,
    analyses_router,
    settings_router,
    dashboard_router,
):
    app.include_router(api_router, prefix="/api")


@app.get("/")
def read_root():
    return "Server is running."
