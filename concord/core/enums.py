"""Core enumerations for Concord."""

from enum import Enum


class ConsensusAlgorithmType(str, Enum):
    """Voting rule used to reduce a tier's outputs to one verdict."""

    MAJORITY = "majority"
    UNANIMOUS = "unanimous"
    WEIGHTED = "weighted"
    FIRST_WINS = "first_wins"
    HUMAN_REVIEW = "human_review"

    def __str__(self) -> str:
        return self.value

    @property
    def auto_advances(self) -> bool:
        """Whether a reached verdict lets the fleet proceed without approval."""
        return self is not ConsensusAlgorithmType.HUMAN_REVIEW

    @property
    def resolves_early(self) -> bool:
        """Whether the tier may stop waiting after the first success."""
        return self is ConsensusAlgorithmType.FIRST_WINS


class AgentRole(str, Enum):
    """Role an agent plays in the fleet."""

    WORKER = "worker"
    MANAGER = "manager"

    def __str__(self) -> str:
        return self.value


class OutputFormat(str, Enum):
    """Shape of the output an agent is expected to return."""

    TEXT = "text"
    JSON = "json"

    def __str__(self) -> str:
        return self.value


class CoordinationMode(str, Enum):
    """Fleet coordination mode."""

    TIERED = "tiered"

    def __str__(self) -> str:
        return self.value


class FinalAggregation(str, Enum):
    """Terminal step applied after the last tier."""

    CONSENSUS = "consensus"
    MANAGER_SYNTHESIS = "manager_synthesis"

    def __str__(self) -> str:
        return self.value


class AgentErrorKind(str, Enum):
    """Why an agent invocation produced no usable output."""

    TIMEOUT = "timeout"
    INVOCATION = "invocation"
    MALFORMED = "malformed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class TierStatus(str, Enum):
    """Outcome of a single tier."""

    COMPLETED = "completed"
    DEGRADED = "degraded"
    NO_DATA = "no_data"
    AWAITING_REVIEW = "awaiting_review"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_degraded(self) -> bool:
        """Check if the tier forwarded a low-confidence or empty verdict."""
        return self in (TierStatus.DEGRADED, TierStatus.NO_DATA)


class FleetStatus(str, Enum):
    """Lifecycle state of a fleet run."""

    PENDING = "pending"
    RUNNING = "running"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if the run can no longer change state."""
        return self in (FleetStatus.DONE, FleetStatus.FAILED)


class EscalationSeverity(str, Enum):
    """How urgently a human-review verdict needs attention."""

    LOW = "low"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


class FleetEventType(str, Enum):
    """Events emitted by the orchestrator while a fleet runs."""

    FLEET_STARTED = "fleet_started"
    TIER_STARTED = "tier_started"
    AGENT_FAILED = "agent_failed"
    TIER_COMPLETED = "tier_completed"
    CONSENSUS_REACHED = "consensus_reached"
    SYNTHESIS_STARTED = "synthesis_started"
    FLEET_COMPLETED = "fleet_completed"
    FLEET_FAILED = "fleet_failed"

    def __str__(self) -> str:
        return self.value
