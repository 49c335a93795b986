"""Core domain models, enums, and exceptions."""

from concord.core.enums import (
    AgentErrorKind,
    AgentRole,
    ConsensusAlgorithmType,
    CoordinationMode,
    EscalationSeverity,
    FinalAggregation,
    FleetEventType,
    FleetStatus,
    OutputFormat,
    TierStatus,
)
from concord.core.exceptions import (
    AgentInvocationError,
    ConcordError,
    ConfigurationError,
    FleetDeadlineExceeded,
    HumanReviewRejected,
    LLMError,
    SynthesisFailure,
    TierExhaustedError,
)

__all__ = [
    "AgentErrorKind",
    "AgentRole",
    "ConsensusAlgorithmType",
    "CoordinationMode",
    "EscalationSeverity",
    "FinalAggregation",
    "FleetEventType",
    "FleetStatus",
    "OutputFormat",
    "TierStatus",
    "AgentInvocationError",
    "ConcordError",
    "ConfigurationError",
    "FleetDeadlineExceeded",
    "HumanReviewRejected",
    "LLMError",
    "SynthesisFailure",
    "TierExhaustedError",
]
