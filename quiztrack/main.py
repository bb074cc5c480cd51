"""FastAPI application entrypoint and HTTP controllers.

This module serves the progress store and the statistics engine to a
local dashboard frontend. Controllers are intentionally thin: they accept
requests, delegate to services and return JSON responses.

Endpoints implemented:
- GET /health
- POST /auth/register
- POST /auth/login
- GET /modules/{module_id}/questions
- GET /modules/{module_id}/progress
- GET /modules/{module_id}/position
- GET /sessions/history
- GET /stats/dashboard (and one route per dashboard section)
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
import json
import logging
import time
import uuid

from . import services
from .analytics import StatisticsEngine
from .auth import get_current_user
from .config import settings
from .dependencies import get_question_provider, get_statistics, get_store
from .errors import AuthenticationError, InvalidDataError, NotFoundError
from .progress_store import ProgressStore
from .schemas import DirectoryEntry, LoginIn, RegisterIn, TokenOut

app = FastAPI(title="Quiz Progress API")
logger = logging.getLogger("quiztrack.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# Wide-open CORS keeps a local dashboard page working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidDataError)
async def invalid_data_handler(request: Request, exc: InvalidDataError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _token_response(user: DirectoryEntry) -> TokenOut:
    return TokenOut(access_token=services.issue_token(user), user_id=user.id, username=user.username)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.post('/auth/register', response_model=TokenOut)
def register(payload: RegisterIn, store: ProgressStore = Depends(get_store)):
    """Register a new user and return a token for the new account.

    Validation problems (short username or password, bad email, email
    already registered) return 400 and store nothing.
    """
    user = services.AuthService(store).register(payload.username, payload.email, payload.password)
    return _token_response(user)


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, store: ProgressStore = Depends(get_store)):
    """Authenticate by email and password and return a short-lived JWT."""
    auth = services.AuthService(store)
    try:
        user = auth.login(payload.email, payload.password)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return _token_response(user)


@app.get('/modules/{module_id}/questions')
def module_questions(module_id: str, provider=Depends(get_question_provider)):
    """Return the questions of a module; 404 when the module cannot be loaded."""
    result = provider.load_questions(module_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return [q.model_dump(mode="json") for q in result.questions]


@app.get('/modules/{module_id}/progress')
def module_progress(
    module_id: str,
    provider=Depends(get_question_provider),
    store: ProgressStore = Depends(get_store),
    user: DirectoryEntry = Depends(get_current_user),
):
    """Seen/correct coverage of a module for the authenticated user."""
    result = provider.load_questions(module_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return store.module_progress(user.id, module_id, len(result.questions))


@app.get('/modules/{module_id}/position')
def module_position(module_id: str, store: ProgressStore = Depends(get_store), user: DirectoryEntry = Depends(get_current_user)):
    """Saved resume position for the module, if it was the last one used."""
    return store.get_position(user.id, module_id)


@app.get('/sessions/history')
def session_history(limit: int = 10, store: ProgressStore = Depends(get_store), user: DirectoryEntry = Depends(get_current_user)):
    """Most recent completed sessions, newest first."""
    return store.session_history(user.id, limit=limit)


@app.get('/stats/dashboard')
def stats_dashboard(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    """Every dashboard section in one payload."""
    return stats.dashboard(user.id)


@app.get('/stats/overview')
def stats_overview(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.overview(user.id)


@app.get('/stats/recent')
def stats_recent(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.recent_performance(user.id)


@app.get('/stats/modules')
def stats_modules(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.module_breakdown(user.id)


@app.get('/stats/time')
def stats_time(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.time_analysis(user.id)


@app.get('/stats/streaks')
def stats_streaks(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.streaks(user.id)


@app.get('/stats/problems')
def stats_problems(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.problem_questions(user.id)


@app.get('/stats/achievements')
def stats_achievements(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    return stats.achievements(user.id)


@app.get('/stats/evolution')
def stats_evolution(days: int = 30, stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    """Daily average score over the trailing `days` window."""
    if days < 1:
        raise HTTPException(status_code=400, detail='days must be >= 1')
    return stats.evolution_series(user.id, window_days=days)


@app.get('/stats/types')
def stats_types(stats: StatisticsEngine = Depends(get_statistics), user: DirectoryEntry = Depends(get_current_user)):
    """Accuracy split by question type."""
    return stats.performance_by_type(user.id)
