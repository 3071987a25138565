# everydaymed/errors.py


class GameError(Exception):
    """Base for errors a route turns into an HTTP status."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GameCompletedError(GameError):
    def __init__(self):
        super().__init__("Game already completed for today")


class NoAttemptsLeftError(GameError):
    def __init__(self):
        super().__init__("No attempts left for today")


class LimitReachedError(GameError):
    pass


class DuplicateQuestionError(GameError):
    def __init__(self):
        super().__init__("This question has already been asked today")


class CaseNotFoundError(GameError):
    status_code = 404

    def __init__(self, message: str = "No disease found for today. Please generate a disease first."):
        super().__init__(message)


class LLMError(GameError):
    status_code = 502


class ConcurrentUpdateError(GameError):
    status_code = 409

    def __init__(self):
        super().__init__("Progress was updated by another request, please retry")
