# everydaymed/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .cases import ensure_case, pre_generate_tomorrow, public_case, regenerate_case, system_status
from .config import Settings, load_settings, today, tomorrow
from .db import create_engine, create_session_factory, init_models
from .errors import CaseNotFoundError, GameError
from .game import ask_question, request_hint, submit_guess
from .scheduler import create_scheduler, cron_job_info, daily_job
from .schemas import AdminActionIn, AskIn, GenerateIn, GuessIn, PlayerIn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("uvicorn.error")

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_session(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


def require_secret(settings: Settings = Depends(get_settings),
                   authorization: Optional[str] = Header(default=None)) -> None:
    # Open when no CRON_SECRET is configured
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(401, "Unauthorized")


async def _todays_case(session: AsyncSession, settings: Settings):
    case = await crud.get_case(session, today(settings))
    if case is None:
        raise CaseNotFoundError()
    return case


def _game_view(case, progress, settings: Settings) -> dict:
    reveal = progress is not None and progress.is_completed
    return {
        "disease": public_case(case, reveal),
        "user_progress": progress.to_dict() if progress else None,
        "game_config": settings.game.as_public_dict(),
    }


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings),
                       session: AsyncSession = Depends(get_session)):
    """Check the health of all components"""
    status = {"server": "ok", "database": "unknown", "llm": "unknown"}

    try:
        await session.execute(text("SELECT 1"))
        status["database"] = "ok"
    except SQLAlchemyError as e:
        status["database"] = f"error: {e}"

    if not settings.use_llm:
        status["llm"] = "disabled"
    elif settings.openai_api_key:
        status["llm"] = "configured"
    else:
        status["llm"] = "missing_api_key"

    return status


@router.get("/api/get-disease-of-the-day")
async def get_disease_of_the_day(user_id: Optional[str] = Query(default=None),
                                 settings: Settings = Depends(get_settings),
                                 session: AsyncSession = Depends(get_session)):
    case = await ensure_case(session, settings)
    progress = await crud.get_progress(session, case.date, user_id)
    return _game_view(case, progress, settings)


@router.post("/api/get-disease-of-the-day")
async def start_game(inp: PlayerIn,
                     settings: Settings = Depends(get_settings),
                     session: AsyncSession = Depends(get_session)):
    case = await _todays_case(session, settings)
    progress = await crud.get_or_create_progress(session, case, inp.user_id, settings.game)
    return _game_view(case, progress, settings)


@router.post("/api/ask-question")
async def api_ask_question(inp: AskIn,
                           settings: Settings = Depends(get_settings),
                           session: AsyncSession = Depends(get_session)):
    if len(inp.question.strip()) < settings.game.min_question_length:
        raise HTTPException(400, f"Question must be at least {settings.game.min_question_length} characters long")

    case = await _todays_case(session, settings)
    progress = await crud.get_or_create_progress(session, case, inp.user_id, settings.game)
    return await ask_question(session, settings, case, progress, inp.question)


@router.post("/api/get-hint")
async def api_get_hint(inp: PlayerIn,
                       settings: Settings = Depends(get_settings),
                       session: AsyncSession = Depends(get_session)):
    case = await _todays_case(session, settings)
    progress = await crud.get_or_create_progress(session, case, inp.user_id, settings.game)
    return await request_hint(session, settings, case, progress)


@router.post("/api/submit-guess")
async def api_submit_guess(inp: GuessIn,
                           settings: Settings = Depends(get_settings),
                           session: AsyncSession = Depends(get_session)):
    if len(inp.guess.strip()) < settings.game.min_guess_length:
        raise HTTPException(400, f"Guess must be at least {settings.game.min_guess_length} characters long")

    case = await _todays_case(session, settings)
    progress = await crud.get_or_create_progress(session, case, inp.user_id, settings.game)
    return await submit_guess(session, settings, case, progress, inp.guess)


@router.get("/api/statistics")
async def api_statistics(user_id: str = Query(min_length=1),
                         session: AsyncSession = Depends(get_session)):
    stats = await crud.get_statistics(session, user_id)
    if stats is None:
        raise HTTPException(404, "No statistics for this user")
    return stats.to_dict()


@router.post("/api/generate-disease")
async def api_generate_disease(inp: Optional[GenerateIn] = None,
                               settings: Settings = Depends(get_settings),
                               session: AsyncSession = Depends(get_session)):
    force = bool(inp and inp.force_regenerate)
    existing = await crud.get_case(session, today(settings))

    if existing is not None and not force:
        return {"disease": existing.to_dict(), "message": "Disease already exists for today"}

    if existing is not None:
        case = await regenerate_case(session, settings)
    else:
        case = await ensure_case(session, settings)
    return {"disease": case.to_dict(), "message": "Disease generated successfully"}


@router.api_route("/api/cron/daily-disease", methods=["GET", "POST"], dependencies=[Depends(require_secret)])
async def api_cron_daily_disease(settings: Settings = Depends(get_settings),
                                 session: AsyncSession = Depends(get_session)):
    existing = await crud.get_case(session, today(settings))
    if existing is not None:
        return {"disease": existing.to_dict(), "message": "Disease already exists for today"}

    case = await ensure_case(session, settings)
    return {"disease": case.to_dict(), "message": "Daily disease generated successfully"}


ADMIN_GET_ACTIONS = ("status", "recent", "stats", "check-today", "check-tomorrow")
ADMIN_POST_ACTIONS = ("ensure-today", "regenerate-today", "pre-generate-tomorrow", "run-cron-now")


@router.get("/api/admin/disease-control", dependencies=[Depends(require_secret)])
async def admin_status(action: str = Query(default="status"),
                       days: int = Query(default=7, ge=1, le=365),
                       settings: Settings = Depends(get_settings),
                       session: AsyncSession = Depends(get_session)):
    if action == "status":
        status = await system_status(session, settings)
        status["cron"] = cron_job_info(settings)
        return status
    if action == "recent":
        cases = await crud.recent_cases(session, days)
        return {"diseases": [c.to_dict() for c in cases], "count": len(cases), "period_days": days}
    if action == "stats":
        return await crud.case_stats(session, today(settings))
    if action in ("check-today", "check-tomorrow"):
        day = today(settings) if action == "check-today" else tomorrow(settings)
        case = await crud.get_case(session, day)
        return {"exists": case is not None, "disease": case.to_dict() if case else None}

    raise HTTPException(400, f"Invalid action. Use: {', '.join(ADMIN_GET_ACTIONS)}")


@router.post("/api/admin/disease-control", dependencies=[Depends(require_secret)])
async def admin_action(inp: AdminActionIn, request: Request,
                       settings: Settings = Depends(get_settings),
                       session: AsyncSession = Depends(get_session)):
    if inp.action == "ensure-today":
        case = await ensure_case(session, settings)
        return {"action": inp.action, "disease": case.to_dict(), "message": "Disease ensured for today"}
    if inp.action == "regenerate-today":
        case = await regenerate_case(session, settings)
        return {"action": inp.action, "disease": case.to_dict(), "message": "Disease regenerated for today"}
    if inp.action == "pre-generate-tomorrow":
        case = await pre_generate_tomorrow(session, settings)
        return {
            "action": inp.action,
            "disease": case.to_dict() if case else None,
            "message": "Disease ready for tomorrow" if case else "Failed to pre-generate tomorrow's disease",
        }
    if inp.action == "run-cron-now":
        result = await daily_job(settings, request.app.state.session_factory)
        if result is None:
            raise HTTPException(500, "Cron job failed, check server logs")
        return {"action": inp.action, "cron_result": result, "message": "Cron job executed manually"}

    raise HTTPException(400, f"Invalid action. Use: {', '.join(ADMIN_POST_ACTIONS)}")


async def game_error_handler(request: Request, exc: GameError):
    if exc.status_code >= 500:
        log.error("Request to %s failed: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app):
        await init_models(engine)
        scheduler = create_scheduler(settings, session_factory)
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            await engine.dispose()
            log.info("Stop Server")

    app = FastAPI(title="EverydayMed Server", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GameError, game_error_handler)
    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
