# everydaymed/cases.py
import logging
import traceback
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .config import Settings, today, tomorrow
from .db import CaseOfTheDay
from .errors import GameError
from .openai_client import generate_case

log = logging.getLogger(__name__)


async def ensure_case(session: AsyncSession, settings: Settings, day: Optional[date] = None) -> CaseOfTheDay:
    """
    Get-or-create the case for `day` (default: today).

    The model is only called when no case is stored yet. If another request
    stores one while we are generating, the unique date wins and we return
    the stored row instead of ours.
    """
    day = day or today(settings)
    existing = await crud.get_case(session, day)
    if existing is not None:
        return existing

    log.info("No case found for %s, generating a new one", day)
    data = await generate_case(settings)
    try:
        case = await crud.insert_case(session, day, data)
    except IntegrityError:
        log.info("Case for %s was stored concurrently, using the stored one", day)
        case = await crud.get_case(session, day)
        if case is None:
            raise
        return case

    log.info("Generated case for %s: %s", day, case.disease_name)
    return case


async def regenerate_case(session: AsyncSession, settings: Settings, day: Optional[date] = None) -> CaseOfTheDay:
    day = day or today(settings)
    data = await generate_case(settings)
    await crud.delete_case(session, day)
    case = await crud.insert_case(session, day, data)
    log.info("Regenerated case for %s: %s", day, case.disease_name)
    return case


async def pre_generate_tomorrow(session: AsyncSession, settings: Settings) -> Optional[CaseOfTheDay]:
    """Ensure tomorrow's case exists. Returns None instead of raising when generation fails."""
    try:
        return await ensure_case(session, settings, tomorrow(settings))
    except (GameError, IntegrityError) as e:
        log.error("Pre-generating tomorrow's case failed: %s\n%s", e, traceback.format_exc())
        return None


def case_summary(case: Optional[CaseOfTheDay], day: date) -> dict:
    return {
        "exists": case is not None,
        "name": case.disease_name if case else None,
        "date": day.isoformat(),
    }


async def system_status(session: AsyncSession, settings: Settings) -> dict:
    day = today(settings)
    todays = await crud.get_case(session, day)
    tomorrows = await crud.get_case(session, tomorrow(settings))
    return {
        "system_status": "healthy" if todays else "needs_disease",
        "today_disease": case_summary(todays, day),
        "tomorrow_disease": case_summary(tomorrows, tomorrow(settings)),
        "stats": await crud.case_stats(session, day),
        "last_update": datetime.now().isoformat(),
    }


def public_case(case: CaseOfTheDay, reveal: bool) -> dict:
    # The answer stays hidden until the player's game is over
    data = case.to_dict()
    if not reveal:
        data.pop("disease_name")
    return data
