import time
import uuid

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from .database import Base, engine
from .exceptions import ProgressionError
from .logging_config import configure_logging
from .routers import exercises, mesocycles, plans, workouts

configure_logging()
logger = structlog.get_logger(__name__)

tags_metadata = [
    {
        "name": "Exercises",
        "description": "Exercise catalogue with the default load increment of each exercise.",
    },
    {
        "name": "Plans",
        "description": "Weekly training plans: days, exercises and base targets. Layout edits reconcile the active mesocycle.",
    },
    {
        "name": "Mesocycles",
        "description": "Mesocycle lifecycle, generated schedule and next-week preview.",
    },
    {
        "name": "Workouts",
        "description": "Generated workouts and set logging.",
    },
]

app = FastAPI(
    title="Progression Service",
    description="Progressive-overload planning: week targets, generated workouts and mid-cycle plan edits",
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("progression_service_started")


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, detail=exc.detail)
    else:
        logger.info("request_rejected", path=request.url.path, code=exc.code, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


origins = [
    "http://localhost",
    "http://localhost:8000",
    "http://localhost:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)
app.add_middleware(
    CorrelationIdMiddleware,
    header_name="X-Request-ID",
    generator=lambda: str(uuid.uuid4()),
    update_request_header=True,
)

app.include_router(exercises.router, tags=["Exercises"])
app.include_router(plans.router, tags=["Plans"])
app.include_router(mesocycles.router, tags=["Mesocycles"])
app.include_router(workouts.router, tags=["Workouts"])


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response
