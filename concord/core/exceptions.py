"""Custom exceptions for Concord."""

from typing import Any


class ConcordError(Exception):
    """Base exception for all Concord errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ConcordError):
    """Raised when a fleet specification or setting is invalid."""

    pass


class AgentInvocationError(ConcordError):
    """Raised when a single agent invocation fails, times out or returns garbage."""

    def __init__(
        self,
        message: str,
        agent_name: str | None = None,
        tier: int | None = None,
        kind: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.agent_name = agent_name
        self.tier = tier
        self.kind = kind
        super().__init__(
            message,
            details={
                **(details or {}),
                "agent_name": agent_name,
                "tier": tier,
                "kind": kind,
            },
        )


class TierExhaustedError(ConcordError):
    """Raised when every agent in a tier failed."""

    def __init__(
        self,
        message: str,
        tier: int | None = None,
        agent_count: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.tier = tier
        self.agent_count = agent_count
        super().__init__(
            message,
            details={
                **(details or {}),
                "tier": tier,
                "agent_count": agent_count,
            },
        )


class SynthesisFailure(ConcordError):
    """Raised when the manager agent fails during final synthesis."""

    def __init__(
        self,
        message: str,
        agent_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.agent_name = agent_name
        super().__init__(
            message,
            details={
                **(details or {}),
                "agent_name": agent_name,
            },
        )


class HumanReviewRejected(ConcordError):
    """Raised when a reviewer declines a human-review tier verdict."""

    def __init__(
        self,
        message: str,
        tier: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.tier = tier
        super().__init__(message, details={**(details or {}), "tier": tier})


class FleetDeadlineExceeded(ConcordError):
    """Raised when a fleet run outlives its overall deadline."""

    def __init__(
        self,
        message: str,
        deadline_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.deadline_seconds = deadline_seconds
        super().__init__(
            message,
            details={**(details or {}), "deadline_seconds": deadline_seconds},
        )


class LLMError(ConcordError):
    """Raised when LLM API call fails."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.model = model
        self.status_code = status_code
        super().__init__(
            message,
            details={
                **(details or {}),
                "model": model,
                "status_code": status_code,
            },
        )
