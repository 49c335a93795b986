"""Pytest fixtures for Concord tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from concord.config import Settings
from concord.core.enums import AgentErrorKind
from concord.core.fleet_models import AgentAssignment, FleetSpec
from concord.core.models import AgentResult, ExecutionContext

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class ScriptedInvoker:
    """
    In-memory AgentInvoker driven by a script.

    Each agent name maps to (delay_seconds, outcome). The outcome is
    returned as the agent's output, raised if it is an exception, or
    called with the context if it is callable.
    """

    def __init__(self, script: dict[str, tuple[float, Any]]) -> None:
        self.script = script
        self.calls: list[tuple[str, ExecutionContext]] = []
        self.cancelled: list[str] = []
        self.active = 0
        self.peak_active = 0

    def contexts_for(self, name: str) -> list[ExecutionContext]:
        return [ctx for agent, ctx in self.calls if agent == name]

    async def invoke(self, agent: AgentAssignment, context: ExecutionContext) -> Any:
        self.calls.append((agent.name, context))
        delay, outcome = self.script[agent.name]

        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(agent.name)
            raise
        finally:
            self.active -= 1

        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(context)
        return outcome


@pytest.fixture
def scripted_invoker() -> Callable[[dict[str, tuple[float, Any]]], ScriptedInvoker]:
    """Factory for scripted invokers."""
    return ScriptedInvoker


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts and no API key."""
    return Settings(
        ANTHROPIC_API_KEY="",
        CONCORD_AGENT_TIMEOUT=2.0,
        CONCORD_MAX_CONCURRENT_AGENTS=10,
        CONCORD_FLEET_DEADLINE=None,
    )


@pytest.fixture
def make_result() -> Callable[..., AgentResult]:
    """Factory for AgentResults completing `at` seconds after a fixed base time."""

    def _make(
        name: str,
        output: Any = None,
        weight: float = 1.0,
        at: float = 0.0,
        error: str | None = None,
        tier: int = 1,
    ) -> AgentResult:
        completed = BASE_TIME + timedelta(seconds=at)
        return AgentResult(
            agent_name=name,
            tier=tier,
            output=output,
            weight=weight,
            latency_ms=at * 1000,
            started_at=BASE_TIME,
            completed_at=completed,
            error=error,
            error_kind=AgentErrorKind.INVOCATION if error else None,
        )

    return _make


@pytest.fixture
def rca_fleet_data() -> dict[str, Any]:
    """Three-tier root-cause fleet: collectors, reasoners, manager."""
    return {
        "name": "rca-team",
        "agents": [
            {"name": "loki-collector", "tier": 1},
            {"name": "prometheus-collector", "tier": 1},
            {"name": "k8s-collector", "tier": 1},
            {"name": "claude-analyzer", "tier": 2, "weight": 1.5},
            {"name": "gemini-analyzer", "tier": 2, "weight": 1.0},
            {"name": "gpt-analyzer", "tier": 2, "weight": 1.0},
            {"name": "rca-coordinator", "tier": 3, "role": "manager"},
        ],
        "coordination": {
            "default_consensus": {"algorithm": "weighted", "min_confidence": 0.6},
            "tier_consensus": {
                1: {"algorithm": "first_wins"},
                2: {"algorithm": "weighted", "min_confidence": 0.6},
            },
            "final_aggregation": "manager_synthesis",
        },
    }


@pytest.fixture
def rca_fleet(rca_fleet_data: dict[str, Any]) -> FleetSpec:
    """Validated three-tier root-cause fleet."""
    return FleetSpec.create(rca_fleet_data)


@pytest.fixture
def rca_script() -> dict[str, tuple[float, Any]]:
    """Script where two of three reasoners agree and the manager synthesizes."""
    return {
        "loki-collector": (0.01, "error rate spike in checkout-service"),
        "prometheus-collector": (0.2, "p99 latency 4s on orders-db"),
        "k8s-collector": (0.2, "no pod restarts"),
        "claude-analyzer": (0.01, "Database timeout"),
        "gemini-analyzer": (0.02, "Database timeout"),
        "gpt-analyzer": (0.03, "Memory leak"),
        "rca-coordinator": (
            0.01,
            "Root cause: database timeouts on orders-db (confidence 0.71).",
        ),
    }


FLEET_YAML = """
apiVersion: concord.dev/v1
kind: AgentFleet
metadata:
  name: rca-team
  labels:
    team: sre
spec:
  agents:
    - name: loki-collector
      tier: 1
      spec:
        model: claude-haiku-4-5
        instructions: Collect error logs.
    - name: prometheus-collector
      tier: 1
    - name: claude-analyzer
      tier: 2
      weight: 1.5
    - name: gemini-analyzer
      tier: 2
    - name: rca-coordinator
      tier: 3
      role: manager
  coordination:
    mode: tiered
    consensus:
      algorithm: weighted
      minVotes: 2
      minConfidence: 0.6
      weights:
        gemini-analyzer: 0.5
    tiered:
      passAllResults: true
      finalAggregation: manager_synthesis
      tierConsensus:
        "1":
          algorithm: first_wins
          timeoutMs: 5000
"""


@pytest.fixture
def fleet_yaml() -> str:
    """Fleet YAML document using camelCase keys."""
    return FLEET_YAML
