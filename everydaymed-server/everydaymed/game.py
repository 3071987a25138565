# everydaymed/game.py
import logging
import traceback

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .config import Settings
from .db import CaseOfTheDay, UserProgress
from .errors import DuplicateQuestionError, GameCompletedError, LimitReachedError, NoAttemptsLeftError
from .judge import compute_score, is_correct_guess
from .normalize import normalize_question
from .openai_client import answer_yes_no, generate_hint

log = logging.getLogger(__name__)

MSG_CORRECT = "Parabéns! Você acertou!"
MSG_GAME_OVER = "Jogo encerrado. Tente novamente amanhã!"
MSG_INCORRECT = "Palpite incorreto. Tente novamente!"


def ensure_playable(progress: UserProgress) -> None:
    if progress.is_solved:
        raise GameCompletedError()
    if progress.attempts_left <= 0:
        raise NoAttemptsLeftError()


async def ask_question(session: AsyncSession, settings: Settings, case: CaseOfTheDay,
                       progress: UserProgress, question: str) -> dict:
    ensure_playable(progress)
    max_questions = settings.game.max_questions
    asked = list(progress.questions_asked or [])
    if len(asked) >= max_questions:
        raise LimitReachedError(f"Maximum of {max_questions} questions per day reached")

    question = question.strip()
    key = normalize_question(question)
    if any(normalize_question(q) == key for q in asked):
        raise DuplicateQuestionError()

    answer = await answer_yes_no(settings, question, case.to_dict())
    asked.append(question)
    progress.questions_asked = asked
    await crud.save_progress(session, progress)
    log.info('Question answered: "%s" -> "%s"', question, answer)

    return {
        "question": question,
        "answer": answer,
        "questions_asked_count": len(asked),
        "max_questions": max_questions,
        "remaining_questions": max_questions - len(asked),
    }


async def request_hint(session: AsyncSession, settings: Settings, case: CaseOfTheDay,
                       progress: UserProgress) -> dict:
    ensure_playable(progress)
    max_hints = settings.game.max_hints
    if progress.hints_used >= max_hints:
        raise LimitReachedError(f"Maximum of {max_hints} hints per day reached")

    number = progress.hints_used + 1
    previous = list(progress.hints or [])
    hint = await generate_hint(settings, case.to_dict(), number, previous)

    progress.hints = previous + [hint]
    progress.hints_used = number
    await crud.save_progress(session, progress)
    log.info("Hint %d generated for %s", number, case.date)

    return {
        "hint": hint,
        "hint_number": number,
        "hints_used": number,
        "max_hints": max_hints,
        "remaining_hints": max_hints - number,
    }


def disease_details(case: CaseOfTheDay) -> dict:
    return {
        "name": case.disease_name,
        "description": case.description,
        "main_symptoms": list(case.main_symptoms or []),
        "risk_factors": list(case.risk_factors or []),
        "differential_diagnoses": list(case.differential_diagnoses or []),
        "treatment": case.treatment,
    }


async def submit_guess(session: AsyncSession, settings: Settings, case: CaseOfTheDay,
                       progress: UserProgress, guess: str) -> dict:
    """
    Spend one attempt on `guess`.

    A correct guess scores from the attempts left after this one and the hints
    used so far; running out of attempts ends the game with zero points.
    """
    ensure_playable(progress)
    game = settings.game
    guess = guess.strip()

    correct = is_correct_guess(guess, case.disease_name)
    history = list(progress.guess_history or []) + [guess]
    attempts_left = progress.attempts_left - 1
    score = progress.score
    completed = False

    if correct:
        score = compute_score(attempts_left, progress.hints_used, game.max_attempts, game.max_hints)
        completed = True
        log.info("Correct guess for %s, score %d", case.date, score)
    elif attempts_left <= 0:
        score = 0
        completed = True
        log.info("Game lost for %s", case.date)
    else:
        log.info('Incorrect guess "%s" for %s', guess, case.date)

    hints_used = progress.hints_used
    progress.guess_history = history
    progress.attempts_left = attempts_left
    progress.is_solved = correct
    progress.score = score
    await crud.save_progress(session, progress)

    result = {
        "is_correct": correct,
        "guess": guess,
        "attempts_left": attempts_left,
        "score": score,
        "game_completed": completed,
        "guess_history": history,
        "correct_answer": case.disease_name if completed else None,
        "disease_details": disease_details(case) if completed else None,
        "message": MSG_CORRECT if correct else MSG_GAME_OVER if completed else MSG_INCORRECT,
    }

    if completed:
        # The guess is already stored; statistics failures are only logged
        try:
            await crud.record_game_result(
                session,
                progress.user_key,
                won=correct,
                attempts_used=game.max_attempts - attempts_left,
                hints_used=hints_used,
                score=score,
            )
        except SQLAlchemyError as e:
            await session.rollback()
            log.error("Updating statistics failed: %s\n%s", e, traceback.format_exc())

    return result
