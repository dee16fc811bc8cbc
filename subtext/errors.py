"""Error taxonomy for ingestion and analysis runs.

Each error carries two things the job carrier cares about:
- ``retryable``: whether another attempt could succeed
- ``user_message``: the short text attached to the case record on failure

Raw error detail goes to the logs, never to the case record.
"""


class SubtextError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = True
    user_message: str = "Analysis failed. Please try again later."

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class InputError(SubtextError):
    """Uploaded content could not be turned into any messages."""

    retryable = False
    user_message = "We could not read any messages from the uploaded files."


class UpstreamError(SubtextError):
    """A reasoning-service call timed out or failed in transport."""

    retryable = True
    user_message = "The analysis service is temporarily unavailable."


class PreconditionError(SubtextError):
    """The requested analysis cannot run for this conversation yet."""

    retryable = False
    user_message = "Run the baseline analysis first."


def is_retryable(exc: BaseException) -> bool:
    """Unknown exceptions are treated as transient."""
    return getattr(exc, "retryable", True)


def user_message_for(exc: BaseException) -> str:
    if isinstance(exc, SubtextError):
        return exc.user_message
    return SubtextError.user_message
