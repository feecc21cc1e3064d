import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
)
from backend.deps import build_store
from backend.logging_config import configure_logging
from backend.routers import attendance, auth, core, students
from backend.services.marking import MarkingService

logger = logging.getLogger(__name__)

app = FastAPI(title="Scanmark API")
app.state.marking = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)

app.include_router(core.router)
app.include_router(auth.router)
app.include_router(attendance.router)
app.include_router(students.router)


@app.on_event("startup")
def _startup():
    configure_logging()
    if app.state.marking is None:
        app.state.marking = MarkingService(build_store())
    logger.info("Scanmark API ready")
