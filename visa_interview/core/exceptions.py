class InterviewError(Exception):
    """Base class for engine errors."""


class ConfigurationError(InterviewError):
    """Unknown or invalid mode/route name. Recovered by falling back to defaults."""


class ExhaustionError(InterviewError):
    """Question pool ran out before the target count was reached."""

    def __init__(self, asked: int, target: int):
        super().__init__(f"Question pool exhausted after {asked} of {target} questions")
        self.asked = asked
        self.target = target


class ProviderError(InterviewError):
    """A text completion provider failed to produce a reply."""


class ScoringTimeoutError(ProviderError):
    """The narrative scorer did not answer within the configured timeout."""


class TranscriptEmptyError(InterviewError):
    """No speech was captured for an answer."""


class FinalizationRaceViolation(InterviewError):
    """A second finalize ran for a question that already has a response.

    This indicates a broken processing guard; it is not a runtime condition.
    """


class PersistenceError(InterviewError):
    """The persistence collaborator could not store a record."""


class InvalidTransitionError(InterviewError):
    """An operation was requested in a session state that does not allow it."""


class SessionNotFoundError(InterviewError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
