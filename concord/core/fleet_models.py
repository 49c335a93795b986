"""Fleet specification models: agents, tiers and coordination settings."""

from typing import Any

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    model_validator,
)

from concord.core.enums import (
    AgentRole,
    ConsensusAlgorithmType,
    CoordinationMode,
    FinalAggregation,
    OutputFormat,
)
from concord.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_WEIGHT = 1.0


class ConsensusConfig(BaseModel):
    """Voting configuration applied to one tier."""

    model_config = ConfigDict(frozen=True)

    algorithm: ConsensusAlgorithmType = ConsensusAlgorithmType.MAJORITY
    min_votes: int = Field(default=1, ge=1)
    min_confidence: float = Field(default=0.5, ge=0, le=1)
    timeout_seconds: float | None = Field(default=None, gt=0)
    weights: dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_weights(self) -> "ConsensusConfig":
        for name, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"Weight for agent '{name}' must be >= 0, got {weight}")
        return self


class AgentAssignment(BaseModel):
    """A single agent's place in the fleet."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    tier: int = Field(default=1, ge=1)
    weight: float | None = Field(default=None, ge=0)
    role: AgentRole = AgentRole.WORKER
    model: str | None = None
    instructions: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=1)
    output_format: OutputFormat = OutputFormat.TEXT
    timeout_seconds: float | None = Field(default=None, gt=0)
    config_path: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    @property
    def agent_ref(self) -> str:
        """Reference handed to the invoker."""
        return self.name

    @property
    def is_manager(self) -> bool:
        """Check if the agent is the fleet manager."""
        return self.role is AgentRole.MANAGER


class CoordinationConfig(BaseModel):
    """How tiers are sequenced, reconciled and aggregated."""

    model_config = ConfigDict(frozen=True)

    mode: CoordinationMode = CoordinationMode.TIERED
    default_consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    tier_consensus: dict[int, ConsensusConfig] = Field(default_factory=dict)
    pass_all_results: bool = False
    final_aggregation: FinalAggregation = FinalAggregation.CONSENSUS
    manager: str | None = None
    allow_tier_gaps: bool = False
    abort_on_tier_failure: bool = False

    def consensus_for(self, tier: int) -> ConsensusConfig:
        """Get the effective consensus config for a tier."""
        return self.tier_consensus.get(tier, self.default_consensus)


class FleetSpec(BaseModel):
    """
    Validated description of a fleet.

    Construction enforces the fleet invariants:
    - agent names are unique
    - tiers are contiguous from 1 (unless gaps are allowed)
    - at most one manager, living in the highest tier
    - every weight or manager reference names a real agent

    Agent weights are resolved once into an index so lookups never fall
    back silently for unknown agents.
    """

    name: str = Field(min_length=1)
    api_version: str = "concord.dev/v1"
    kind: str = "AgentFleet"
    labels: dict[str, str] = Field(default_factory=dict)
    agents: list[AgentAssignment] = Field(min_length=1)
    coordination: CoordinationConfig = Field(default_factory=CoordinationConfig)

    _by_name: dict[str, AgentAssignment] = PrivateAttr(default_factory=dict)
    _weights: dict[str, float] = PrivateAttr(default_factory=dict)

    @classmethod
    def create(cls, data: dict[str, Any]) -> "FleetSpec":
        """Build a FleetSpec, converting validation failures to ConfigurationError."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid fleet specification: {e.error_count()} error(s)",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

    @model_validator(mode="after")
    def _check_invariants(self) -> "FleetSpec":
        by_name: dict[str, AgentAssignment] = {}
        for agent in self.agents:
            if agent.name in by_name:
                raise ValueError(f"Duplicate agent name in fleet: {agent.name}")
            by_name[agent.name] = agent

        coordination = self.coordination
        tiers = sorted({a.tier for a in self.agents})

        if not coordination.allow_tier_gaps:
            expected = list(range(1, tiers[-1] + 1))
            if tiers != expected:
                raise ValueError(
                    f"Tier numbers must be contiguous starting at 1, got {tiers}"
                )

        for tier in coordination.tier_consensus:
            if tier not in tiers:
                raise ValueError(f"tier_consensus references unknown tier {tier}")

        managers = [a for a in self.agents if a.is_manager]
        if len(managers) > 1:
            raise ValueError(
                f"At most one manager allowed, got {[m.name for m in managers]}"
            )
        if managers:
            manager = managers[0]
            if manager.tier != tiers[-1]:
                raise ValueError(
                    f"Manager '{manager.name}' must belong to the highest tier "
                    f"({tiers[-1]}), found in tier {manager.tier}"
                )
            if len(self.agents) == 1:
                raise ValueError("A fleet cannot consist of only a manager")

        if coordination.manager is not None:
            named = by_name.get(coordination.manager)
            if named is None:
                raise ValueError(f"Unknown manager agent: {coordination.manager}")
            if not named.is_manager:
                raise ValueError(
                    f"Agent '{coordination.manager}' is named as manager but has role "
                    f"'{named.role.value}'"
                )

        if (
            coordination.final_aggregation is FinalAggregation.MANAGER_SYNTHESIS
            and not managers
        ):
            raise ValueError("manager_synthesis aggregation requires a manager agent")

        configs = [coordination.default_consensus, *coordination.tier_consensus.values()]
        for config in configs:
            unknown = sorted(set(config.weights) - set(by_name))
            if unknown:
                raise ValueError(f"Consensus weights reference unknown agents: {unknown}")

        if len(tiers) < 2:
            logger.warning("single_tier_fleet", fleet=self.name, tier=tiers[0])

        self._by_name = by_name
        self._weights = {
            agent.name: self._resolve_weight(agent, coordination.default_consensus)
            for agent in self.agents
        }
        return self

    @staticmethod
    def _resolve_weight(agent: AgentAssignment, config: ConsensusConfig) -> float:
        if agent.weight is not None:
            return agent.weight
        return config.weights.get(agent.name, DEFAULT_WEIGHT)

    def get_agent(self, name: str) -> AgentAssignment:
        """Get an agent by name."""
        try:
            return self._by_name[name]
        except KeyError:
            raise ConfigurationError(f"Unknown agent: {name}", details={"fleet": self.name})

    def weight_of(self, name: str) -> float:
        """Get the resolved weight for an agent."""
        try:
            return self._weights[name]
        except KeyError:
            raise ConfigurationError(f"Unknown agent: {name}", details={"fleet": self.name})

    def weights(self) -> dict[str, float]:
        """Get the resolved weight index."""
        return dict(self._weights)

    def weights_for(self, tier: int) -> dict[str, float]:
        """Get weights for a tier, applying tier-level hints to agents without an explicit weight."""
        weights = self.weights()
        override = self.coordination.tier_consensus.get(tier)
        if override is not None:
            for name, weight in override.weights.items():
                if self._by_name[name].weight is None:
                    weights[name] = weight
        return weights

    def tiers(self) -> list[int]:
        """Get the sorted list of tier numbers."""
        return sorted({a.tier for a in self.agents})

    def agents_in_tier(self, tier: int) -> list[AgentAssignment]:
        """Get every agent assigned to a tier, in declaration order."""
        return [a for a in self.agents if a.tier == tier]

    def manager(self) -> AgentAssignment | None:
        """Get the manager agent, if any."""
        for agent in self.agents:
            if agent.is_manager:
                return agent
        return None

    @property
    def synthesizes(self) -> bool:
        """Check if the final answer comes from manager synthesis."""
        return self.coordination.final_aggregation is FinalAggregation.MANAGER_SYNTHESIS

    def voting_agents(self, tier: int) -> list[AgentAssignment]:
        """Get the agents that vote in a tier (the manager sits out when it synthesizes)."""
        agents = self.agents_in_tier(tier)
        if self.synthesizes:
            agents = [a for a in agents if not a.is_manager]
        return agents

    def voting_tiers(self) -> list[int]:
        """Get the tiers that have at least one voting agent."""
        return [t for t in self.tiers() if self.voting_agents(t)]
