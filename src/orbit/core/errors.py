"""Exception hierarchy raised across the agent core."""

from __future__ import annotations


class OrbitError(Exception):
    """Base error for the agent core."""


class AgentStartupError(OrbitError):
    """Raised when the memory store or a capability engine fails to initialize."""


class AgentNotRunningError(OrbitError):
    """Raised when work is submitted to an agent that is not running."""


class DuplicateTaskError(OrbitError):
    """Raised when an action id is registered twice."""


class UnsupportedActionError(OrbitError):
    """Raised by the executor when no handler matches an action type."""


class RecommendationNotFoundError(OrbitError):
    """Raised when a stored recommendation cannot be found."""


class ContentGenerationError(OrbitError):
    """Raised when a content request produced no content."""


class ChatModelError(OrbitError):
    """Base conversational model error."""


class ChatModelMissingAPIKeyError(ChatModelError):
    """Raised when the conversational model has no API key configured."""
