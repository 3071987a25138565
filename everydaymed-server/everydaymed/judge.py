# everydaymed/judge.py
from .normalize import normalize_text

# Hand-tuned; kept for compatibility with scores already recorded.
MATCH_THRESHOLD = 0.7
MIN_TOKEN_LENGTH = 3

BASE_SCORE = 300
ATTEMPT_PENALTY = 50
HINT_PENALTY = 25

ANSWER_YES = "Sim"
ANSWER_NO = "Não"
ANSWER_INVALID = "Pergunta inválida"


def _tokens(normalized:str):
    return [w for w in normalized.split() if len(w) >= MIN_TOKEN_LENGTH]


def is_correct_guess(guess:str, answer:str) -> bool:
    """
    Decide whether a free-text guess names the answer.

    Accepts exact matches, containment in either direction, and guesses whose
    significant words overlap the answer's words by at least MATCH_THRESHOLD.
    Leans towards accepting partial names over rejecting them.
    """
    g = normalize_text(guess)
    a = normalize_text(answer)

    if g == a:
        return True
    if a in g or g in a:
        return True

    guess_words = _tokens(g)
    answer_words = _tokens(a)
    if not guess_words or not answer_words:
        return False

    matching = [
        w for w in guess_words
        if any(w in aw or aw in w for aw in answer_words)
    ]
    ratio = len(matching) / max(len(guess_words), len(answer_words))
    return ratio >= MATCH_THRESHOLD


def compute_score(attempts_left:int, hints_used:int, max_attempts:int=3, max_hints:int=3) -> int:
    # max_hints is not part of the formula; hints are penalized per use
    attempt_penalty = (max_attempts - attempts_left) * ATTEMPT_PENALTY
    hint_penalty = hints_used * HINT_PENALTY
    return max(0, BASE_SCORE - attempt_penalty - hint_penalty)


def parse_yes_no(text:str) -> str:
    t = (text or "").strip().lower()
    if "sim" in t:
        return ANSWER_YES
    if "não" in t or "nao" in t:
        return ANSWER_NO
    return ANSWER_INVALID
