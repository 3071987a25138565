# everydaymed/scheduler.py
import logging
import traceback
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import SQLAlchemyError

from .cases import ensure_case, pre_generate_tomorrow
from .config import Settings
from .errors import GameError

log = logging.getLogger(__name__)

CRON_HOUR = 0
CRON_MINUTE = 0


async def daily_job(settings: Settings, session_factory) -> Optional[dict]:
    """Ensure today's case, then pre-generate tomorrow's. Failures are logged, not raised."""
    log.info("Starting daily case generation")
    try:
        async with session_factory() as session:
            case = await ensure_case(session, settings)
            upcoming = await pre_generate_tomorrow(session, settings)
    except (GameError, SQLAlchemyError) as e:
        log.error("Daily case generation failed: %s\n%s", e, traceback.format_exc())
        return None

    log.info("Daily case ready for %s: %s", case.date, case.disease_name)
    return {
        "today": case.to_dict(),
        "tomorrow": upcoming.to_dict() if upcoming else None,
    }


def create_scheduler(settings: Settings, session_factory) -> Optional[AsyncIOScheduler]:
    if not settings.enable_cron:
        log.info("Daily case cron disabled. Set ENABLE_CRON=true to enable.")
        return None

    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    scheduler.add_job(
        daily_job,
        "cron",
        hour=CRON_HOUR,
        minute=CRON_MINUTE,
        args=[settings, session_factory],
        id="daily_case",
        replace_existing=True,
    )
    log.info("Daily case cron scheduled at %02d:%02d (%s)", CRON_HOUR, CRON_MINUTE, settings.timezone)
    return scheduler


def cron_job_info(settings: Settings) -> dict:
    return {
        "disease_generation": {
            "expression": f"{CRON_MINUTE} {CRON_HOUR} * * *",
            "description": "Generate new disease daily at midnight",
            "timezone": settings.timezone,
            "enabled": settings.enable_cron,
        },
    }
