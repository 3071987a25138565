# everydaymed/crud.py
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from .config import GameConfig
from .db import CaseOfTheDay, GameStatistics, UserProgress
from .errors import ConcurrentUpdateError

log = logging.getLogger(__name__)


def user_key(user_id: Optional[str]) -> str:
    return (user_id or "").strip()


async def get_case(session: AsyncSession, day: date) -> Optional[CaseOfTheDay]:
    result = await session.execute(select(CaseOfTheDay).where(CaseOfTheDay.date == day))
    return result.scalars().first()


async def insert_case(session: AsyncSession, day: date, data: dict) -> CaseOfTheDay:
    """Store a generated case for `day`.

    Raises IntegrityError (after rolling back) if another writer stored one first.
    """
    case = CaseOfTheDay(
        date=day,
        disease_name=data["disease_name"],
        description=data["description"],
        main_symptoms=list(data.get("main_symptoms") or []),
        risk_factors=list(data.get("risk_factors") or []),
        differential_diagnoses=list(data.get("differential_diagnoses") or []),
        treatment=data.get("treatment") or "",
    )
    session.add(case)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise
    return case


async def delete_case(session: AsyncSession, day: date) -> None:
    await session.execute(delete(CaseOfTheDay).where(CaseOfTheDay.date == day))
    await session.commit()


async def recent_cases(session: AsyncSession, limit: int = 7) -> List[CaseOfTheDay]:
    result = await session.execute(
        select(CaseOfTheDay).order_by(CaseOfTheDay.date.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def case_stats(session: AsyncSession, day: date) -> dict:
    async def count_since(since: Optional[date]) -> int:
        stmt = select(func.count()).select_from(CaseOfTheDay)
        if since is not None:
            stmt = stmt.where(CaseOfTheDay.date >= since)
        return (await session.execute(stmt)).scalar_one()

    last = (await session.execute(select(func.max(CaseOfTheDay.date)))).scalar_one_or_none()
    return {
        "total_diseases": await count_since(None),
        "diseases_this_month": await count_since(day.replace(day=1)),
        "diseases_this_week": await count_since(day - timedelta(days=7)),
        "last_generated": last.isoformat() if last else None,
    }


async def get_progress(session: AsyncSession, day: date, user_id: Optional[str]) -> Optional[UserProgress]:
    result = await session.execute(
        select(UserProgress).where(
            UserProgress.date == day,
            UserProgress.user_key == user_key(user_id),
        )
    )
    return result.scalars().first()


async def get_or_create_progress(session: AsyncSession, case: CaseOfTheDay,
                                 user_id: Optional[str], game: GameConfig) -> UserProgress:
    """Idempotent per (date, user); a concurrent creator wins and its row is returned."""
    progress = await get_progress(session, case.date, user_id)
    if progress is not None:
        return progress

    progress = UserProgress(
        user_key=user_key(user_id),
        case_id=case.id,
        date=case.date,
        attempts_left=game.max_attempts,
        hints_used=0,
        hints=[],
        questions_asked=[],
        is_solved=False,
        guess_history=[],
        score=0,
    )
    session.add(progress)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        log.info("Progress for %s/%r created concurrently, re-reading", case.date, user_key(user_id))
        progress = await get_progress(session, case.date, user_id)
        if progress is None:
            raise
    return progress


async def save_progress(session: AsyncSession, progress: UserProgress) -> UserProgress:
    """Commit changes to `progress`.

    Raises ConcurrentUpdateError (after rolling back) if another request saved
    the same row since it was read.
    """
    day, key = progress.date, progress.user_key
    progress.updated_at = datetime.now()
    try:
        await session.commit()
    except StaleDataError:
        await session.rollback()
        log.info("Progress %s/%r changed concurrently, rejecting write", day, key)
        raise ConcurrentUpdateError()
    return progress


async def get_statistics(session: AsyncSession, user_id: Optional[str]) -> Optional[GameStatistics]:
    result = await session.execute(
        select(GameStatistics).where(GameStatistics.user_key == user_key(user_id))
    )
    return result.scalars().first()


async def record_game_result(session: AsyncSession, user_id: Optional[str], won: bool,
                             attempts_used: int, hints_used: int, score: int) -> Optional[GameStatistics]:
    """Fold one finished game into the player's running statistics. Anonymous games are not tracked."""
    if not user_key(user_id):
        return None

    stats = await get_statistics(session, user_id)
    if stats is None:
        stats = GameStatistics(
            user_key=user_key(user_id),
            total_games=0,
            games_won=0,
            games_lost=0,
            total_score=0,
            average_attempts=0.0,
            average_hints_used=0.0,
        )
        session.add(stats)

    n = stats.total_games
    stats.average_attempts = (stats.average_attempts * n + attempts_used) / (n + 1)
    stats.average_hints_used = (stats.average_hints_used * n + hints_used) / (n + 1)
    stats.total_games = n + 1
    if won:
        stats.games_won += 1
    else:
        stats.games_lost += 1
    stats.total_score += score
    stats.updated_at = datetime.now()
    await session.commit()
    return stats
