import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bracket_engine.database import init_db
from bracket_engine.errors import BracketError, NotFoundError, ResultError, StateError, ValidationError
from bracket_engine.routes import matches, stages, tournaments

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Bracket Engine API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Engine errors -> HTTP status codes
ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 422,
    ResultError: 422,
    StateError: 409,
}


@app.exception_handler(BracketError)
def handle_bracket_error(request: Request, exc: BracketError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


app.include_router(stages.router, prefix="/api", tags=["stages"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    logger.info("Bracket Engine API started with %d routes", len(app.routes))


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint"""
    return {"app_name": "Bracket Engine API", "status": "healthy"}
