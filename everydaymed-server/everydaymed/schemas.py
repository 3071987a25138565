# everydaymed/schemas.py
from pydantic import BaseModel, Field
from typing import Optional


class PlayerIn(BaseModel):
    user_id: Optional[str] = None


class AskIn(BaseModel):
    question: str = Field(min_length=1)
    user_id: Optional[str] = None


class GuessIn(BaseModel):
    guess: str = Field(min_length=1)
    user_id: Optional[str] = None


class GenerateIn(BaseModel):
    force_regenerate: bool = False


class AdminActionIn(BaseModel):
    action: str
