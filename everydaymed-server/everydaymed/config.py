# everydaymed/config.py
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class GameConfig:
    max_attempts: int = 3
    max_hints: int = 3
    max_questions: int = 10
    min_guess_length: int = 3
    min_question_length: int = 5

    def as_public_dict(self):
        return {
            "max_attempts": self.max_attempts,
            "max_hints": self.max_hints,
            "max_questions": self.max_questions,
        }


@dataclass(frozen=True)
class Settings:
    game: GameConfig = field(default_factory=GameConfig)
    database_url: str = "sqlite+aiosqlite:///./everydaymed.sqlite3"
    openai_api_key: Optional[str] = None
    openai_api_base: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    timezone: str = "America/Sao_Paulo"
    enable_cron: bool = False
    cron_secret: Optional[str] = None
    use_llm: bool = True


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def load_settings() -> Settings:
    """Read the process environment once; everything downstream takes the result."""
    game = GameConfig(
        max_attempts=_int("GAME_MAX_ATTEMPTS", 3),
        max_hints=_int("GAME_MAX_HINTS", 3),
        max_questions=_int("GAME_MAX_QUESTIONS", 10),
    )
    return Settings(
        game=game,
        database_url=os.getenv("EVERYDAYMED_DATABASE_URL", "sqlite+aiosqlite:///./everydaymed.sqlite3"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_api_base=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        timezone=os.getenv("TIMEZONE", "America/Sao_Paulo"),
        enable_cron=_flag(os.getenv("ENABLE_CRON")),
        cron_secret=os.getenv("CRON_SECRET") or None,
        use_llm=os.getenv("USE_LLM", "1") == "1",
    )


def today(settings: Settings) -> date:
    return datetime.now(ZoneInfo(settings.timezone)).date()


def tomorrow(settings: Settings) -> date:
    return today(settings) + timedelta(days=1)
