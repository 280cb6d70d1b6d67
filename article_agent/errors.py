"""Error taxonomy for the article pipeline."""

from typing import Optional


class ArticleAgentError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(ArticleAgentError):
    """Topic missing, invalid, unpinned, or naming an unknown model."""


class NotFound(ArticleAgentError):
    """Unknown run id or article id."""


class InvalidState(ArticleAgentError):
    """Operation not valid for the run's current status."""


class InvalidRequest(ArticleAgentError):
    """Malformed caller input, e.g. an unknown stage name."""


class StageFailure(ArticleAgentError):
    """A stage collaborator raised."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.stage = stage
        self.cause = cause


class StageTimeout(StageFailure):
    """A stage collaborator did not finish within its timeout."""

    def __init__(self, stage: str, timeout_seconds: float):
        super().__init__(stage, f"stage {stage} timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


def error_message(exc: BaseException) -> str:
    """Message recorded for a failed stage: the text only, never the stack."""
    message = str(exc).strip()
    return message or exc.__class__.__name__
