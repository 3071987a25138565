# everydaymed/db.py
from datetime import datetime
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column, UniqueConstraint
from sqlalchemy.types import JSON, Boolean, Date, DateTime, Float, Integer, String, Text


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid4())


class CaseOfTheDay(Base):
    __tablename__ = "case_of_the_day"
    id = Column(String(36), primary_key=True, default=_uuid)
    # One case per calendar day; get-or-create relies on this
    date = Column(Date, nullable=False, unique=True, index=True)
    disease_name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    main_symptoms = Column(JSON, nullable=False, default=list)
    risk_factors = Column(JSON, nullable=False, default=list)
    differential_diagnoses = Column(JSON, nullable=False, default=list)
    treatment = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "disease_name": self.disease_name,
            "description": self.description,
            "main_symptoms": list(self.main_symptoms or []),
            "risk_factors": list(self.risk_factors or []),
            "differential_diagnoses": list(self.differential_diagnoses or []),
            "treatment": self.treatment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserProgress(Base):
    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("date", "user_key", name="uq_progress_date_user"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    # "" is the shared anonymous player
    user_key = Column(String, nullable=False, default="")
    case_id = Column(String(36), nullable=False)
    date = Column(Date, nullable=False, index=True)
    attempts_left = Column(Integer, nullable=False)
    hints_used = Column(Integer, nullable=False, default=0)
    hints = Column(JSON, nullable=False, default=list)
    questions_asked = Column(JSON, nullable=False, default=list)
    is_solved = Column(Boolean, nullable=False, default=False)
    guess_history = Column(JSON, nullable=False, default=list)
    score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)
    # Optimistic lock: an UPDATE from a stale read matches no row
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_completed(self) -> bool:
        return bool(self.is_solved) or self.attempts_left <= 0

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_key or None,
            "disease_id": self.case_id,
            "date": self.date.isoformat(),
            "attempts_left": self.attempts_left,
            "hints_used": self.hints_used,
            "hints": list(self.hints or []),
            "questions_asked": list(self.questions_asked or []),
            "is_solved": bool(self.is_solved),
            "guess_history": list(self.guess_history or []),
            "score": self.score,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class GameStatistics(Base):
    __tablename__ = "game_statistics"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_key = Column(String, nullable=False, unique=True)
    total_games = Column(Integer, nullable=False, default=0)
    games_won = Column(Integer, nullable=False, default=0)
    games_lost = Column(Integer, nullable=False, default=0)
    total_score = Column(Integer, nullable=False, default=0)
    average_attempts = Column(Float, nullable=False, default=0.0)
    average_hints_used = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    def to_dict(self):
        win_rate = self.games_won / self.total_games if self.total_games else 0.0
        return {
            "user_id": self.user_key,
            "total_games": self.total_games,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "total_score": self.total_score,
            "average_attempts": self.average_attempts,
            "average_hints_used": self.average_hints_used,
            "win_rate": win_rate,
        }


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(url=database_url, echo=False)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        autoflush=True,
        class_=AsyncSession,
        bind=engine,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
