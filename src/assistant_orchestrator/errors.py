"""Error taxonomy shared by tools, engine, and job handlers."""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for errors raised inside the orchestration core."""


class ToolValidationError(OrchestratorError):
    """Missing or malformed tool arguments."""


class AccessDeniedError(OrchestratorError):
    """A tool call tried to touch a row owned by another user."""

    def __init__(self, message: str = "access denied") -> None:
        super().__init__(message)


class NotFoundError(OrchestratorError):
    """Referenced row does not exist."""


class ExternalServiceError(OrchestratorError):
    """A remote collaborator (LLM, embeddings) failed."""


class LLMGatewayError(ExternalServiceError):
    """LLM request failed or returned an unusable response."""


class EmbeddingError(ExternalServiceError):
    """Embedding generation failed."""


class PersistenceError(OrchestratorError):
    """Storage write failed."""


class DispatchError(OrchestratorError):
    """Inbound event could not be turned into tool calls."""


class InvalidTaskStateError(OrchestratorError):
    """Operation is not allowed in the task's current state."""
