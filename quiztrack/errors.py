"""Exception types shared by the store, the coordinator and the HTTP layer."""


class QuizTrackError(Exception):
    """Base class for all quiztrack errors."""


class NotFoundError(QuizTrackError):
    """A module, user or position does not exist."""


class InvalidDataError(QuizTrackError, ValueError):
    """Malformed input: a question payload or registration data."""


class AuthenticationError(QuizTrackError):
    """Credentials did not match a known user."""


class PersistenceError(QuizTrackError):
    """A write to the persistence medium did not durably complete."""


class CapacityExceededError(PersistenceError):
    """The persistence medium has no room left for the write."""


class ProviderError(QuizTrackError):
    """The question source could not deliver a module."""
