import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import Base, engine
from .errors import ArtSchoolError, PersistenceError
from .schemas import describe_errors
from .routers import courses, orders, students, teachers, leaves, dashboard, options

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # DEV ONLY: production databases are migrated separately
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Arts School Back Office API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------------
# ERROR SHAPE: {"error": "<message>"}
# --------------------------------------------------------
@app.exception_handler(ArtSchoolError)
async def domain_error_handler(request: Request, exc: ArtSchoolError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(
        "%s %s failed in the store: %s", request.method, request.url.path, exc.__class__.__name__
    )
    error = PersistenceError("database error")
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": describe_errors(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# --------------------------------------------------------
# ROUTES
# --------------------------------------------------------
app.include_router(courses.router)
app.include_router(orders.router)
app.include_router(students.router)
app.include_router(teachers.router)
app.include_router(leaves.router)
app.include_router(dashboard.router)
app.include_router(options.router)


@app.get("/")
def root():
    return {"message": "Backend is running!"}
