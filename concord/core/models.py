"""Core domain models for Concord: results, verdicts, context and reports."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field

from concord.core.enums import (
    AgentErrorKind,
    ConsensusAlgorithmType,
    EscalationSeverity,
    FleetEventType,
    FleetStatus,
    TierStatus,
)
from concord.core.fleet_models import ConsensusConfig

AgentOutput = str | dict[str, Any] | list[Any]


def utcnow() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


class AgentResult(BaseModel):
    """Outcome of one agent invocation attempt."""

    model_config = ConfigDict(frozen=True)

    agent_name: str
    tier: int
    output: AgentOutput | None = None
    weight: float = 1.0
    latency_ms: float = 0.0
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime = Field(default_factory=utcnow)
    error: str | None = None
    error_kind: AgentErrorKind | None = None

    @computed_field
    @property
    def succeeded(self) -> bool:
        """Whether the invocation produced a usable output."""
        return self.error is None


class VoteTally(BaseModel):
    """Support behind one distinct output value."""

    model_config = ConfigDict(frozen=True)

    value: Any
    count: int
    score: float
    agents: list[str]


class ConsensusResult(BaseModel):
    """Verdict produced once per tier by the consensus engine."""

    model_config = ConfigDict(frozen=True)

    result: Any = None
    confidence: float = Field(ge=0, le=1)
    votes: int = Field(ge=0)
    algorithm: ConsensusAlgorithmType
    reached: bool
    min_votes: int = 1
    min_confidence: float = 0.5
    tally: list[VoteTally] = Field(default_factory=list)
    dissenters: list[str] = Field(default_factory=list)
    escalation: EscalationSeverity | None = None

    @computed_field
    @property
    def no_data(self) -> bool:
        """Whether no agent succeeded."""
        return self.votes == 0

    @computed_field
    @property
    def distinct_values(self) -> int:
        """Number of distinct successful outputs."""
        return len(self.tally)


class ContextEntry(BaseModel):
    """One tier's contribution to the execution context."""

    model_config = ConfigDict(frozen=True)

    tier: int
    consensus: ConsensusResult
    results: list[AgentResult] = Field(default_factory=list)
    pass_all_results: bool = False

    @property
    def forwarded(self) -> Any:
        """Payload the next tier receives from this tier."""
        if self.pass_all_results:
            return self.results
        return self.consensus.result


class ExecutionContext(BaseModel):
    """
    Append-only log of tier outcomes.

    Each append returns a new context, so a tier's executor only ever sees
    entries written before it started.
    """

    model_config = ConfigDict(frozen=True)

    task: Any
    entries: tuple[ContextEntry, ...] = ()

    def append(self, entry: ContextEntry) -> "ExecutionContext":
        """Return a new context with the entry appended."""
        if self.entries and entry.tier <= self.entries[-1].tier:
            raise ValueError(
                f"Context entries must be appended in ascending tier order: "
                f"{entry.tier} after {self.entries[-1].tier}"
            )
        return self.model_copy(update={"entries": self.entries + (entry,)})

    def latest(self) -> ContextEntry | None:
        """Get the most recent entry."""
        return self.entries[-1] if self.entries else None

    def forwarded_payload(self) -> list[tuple[int, Any]]:
        """Get what each prior tier forwarded, in tier order."""
        return [(entry.tier, entry.forwarded) for entry in self.entries]

    def verdicts(self) -> dict[int, ConsensusResult]:
        """Get every tier's consensus verdict."""
        return {entry.tier: entry.consensus for entry in self.entries}


class TierReport(BaseModel):
    """Audit record for one executed tier."""

    model_config = ConfigDict(frozen=True)

    tier: int
    status: TierStatus
    consensus: ConsensusResult
    results: list[AgentResult] = Field(default_factory=list)
    config: ConsensusConfig
    duration_ms: float = 0.0
    error: str | None = None

    @computed_field
    @property
    def success_count(self) -> int:
        """Number of agents that produced output."""
        return sum(1 for r in self.results if r.succeeded)

    @computed_field
    @property
    def failure_count(self) -> int:
        """Number of agents that failed, timed out or were cancelled."""
        return len(self.results) - self.success_count


class FleetExecutionReport(BaseModel):
    """Final output of a fleet run."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: str(uuid4()))
    fleet_name: str
    status: FleetStatus
    task: Any = None
    tiers: list[TierReport] = Field(default_factory=list)
    final_consensus: ConsensusResult | None = None
    answer: Any = None
    synthesis_agent: str | None = None
    error: str | None = None
    started_at: datetime
    completed_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def degraded_tiers(self) -> list[int]:
        """Tiers that forwarded a low-confidence or empty verdict."""
        return [t.tier for t in self.tiers if t.status.is_degraded]

    @computed_field
    @property
    def failed_tiers(self) -> list[int]:
        """Tiers with zero successful agents."""
        return [t.tier for t in self.tiers if t.status is TierStatus.NO_DATA]

    @computed_field
    @property
    def total_invocations(self) -> int:
        """Number of agent invocations recorded across tiers."""
        return sum(len(t.results) for t in self.tiers)

    @computed_field
    @property
    def successful_invocations(self) -> int:
        """Number of agent invocations that produced output."""
        return sum(t.success_count for t in self.tiers)

    @computed_field
    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the run."""
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        """Whether the run finished without a fatal error."""
        return self.status is FleetStatus.DONE

    def tier(self, number: int) -> TierReport:
        """Get the report for a tier."""
        for report in self.tiers:
            if report.tier == number:
                return report
        raise KeyError(f"No report for tier {number}")


class FleetEvent(BaseModel):
    """Event emitted while a fleet runs."""

    model_config = ConfigDict(frozen=True)

    type: FleetEventType
    fleet_name: str
    run_id: str
    tier: int | None = None
    agent_name: str | None = None
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
