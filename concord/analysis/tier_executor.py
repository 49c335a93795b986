"""Runs one tier's agents concurrently and reconciles their outputs."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Mapping

import structlog

from concord.agents.base import AgentInvoker
from concord.analysis.consensus import ConsensusEngine
from concord.config import Settings, get_settings
from concord.core.enums import AgentErrorKind
from concord.core.exceptions import AgentInvocationError
from concord.core.fleet_models import AgentAssignment, ConsensusConfig
from concord.core.models import (
    AgentResult,
    ConsensusResult,
    ExecutionContext,
    utcnow,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TierExecution:
    """Raw results and verdict for one tier."""

    tier: int
    results: list[AgentResult]
    consensus: ConsensusResult
    duration_ms: float


def is_well_formed(output: Any) -> bool:
    """Check that an agent output is something the engine can vote on."""
    if isinstance(output, str):
        return bool(output.strip())
    return isinstance(output, (dict, list))


def _discard_outcome(task: asyncio.Task) -> None:
    # Cancelled stragglers may still finish or fail; nobody is waiting on them.
    if not task.cancelled():
        task.exception()


class TierExecutor:
    """
    Fan-out/fan-in execution of a single tier.

    Every agent is invoked with the same context, bounded by a shared
    semaphore and an individual timeout. Failures of any kind become
    AgentResults with an error set: they are excluded from the vote but
    kept for audit. First-wins tiers return on the first success and
    cancel whatever is still in flight without waiting for it.
    """

    def __init__(
        self,
        invoker: AgentInvoker,
        engine: ConsensusEngine | None = None,
        settings: Settings | None = None,
        default_timeout: float | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._invoker = invoker
        self._engine = engine or ConsensusEngine()
        self._default_timeout = default_timeout or self._settings.agent_timeout_seconds
        self._max_concurrent = max_concurrent or self._settings.max_concurrent_agents

    def timeout_for(self, agent: AgentAssignment, config: ConsensusConfig) -> float:
        """Resolve the invocation timeout: agent, then tier, then executor default."""
        return agent.timeout_seconds or config.timeout_seconds or self._default_timeout

    async def run_tier(
        self,
        agents: list[AgentAssignment],
        context: ExecutionContext,
        config: ConsensusConfig,
        weights: Mapping[str, float] | None = None,
        tier: int | None = None,
    ) -> TierExecution:
        """
        Run every agent of a tier and evaluate consensus once.

        Args:
            agents: Agents assigned to the tier
            context: Execution context visible to the tier
            config: Effective consensus config for the tier
            weights: Resolved agent weights
            tier: Tier number (defaults to the agents' tier)

        Returns:
            TierExecution with results sorted by agent name
        """
        if tier is None:
            tier = agents[0].tier if agents else 0
        if weights is None:
            weights = {a.name: a.weight if a.weight is not None else 1.0 for a in agents}

        log = logger.bind(tier=tier, algorithm=config.algorithm.value)
        log.info("tier_started", agents=[a.name for a in agents])
        started = time.perf_counter()

        semaphore = asyncio.Semaphore(self._max_concurrent)
        tasks: dict[asyncio.Task, AgentAssignment] = {
            asyncio.create_task(
                self._invoke(agent, context, config, weights, tier, semaphore),
                name=f"concord-agent-{agent.name}",
            ): agent
            for agent in agents
        }

        try:
            if config.algorithm.resolves_early:
                results = await self._join_first(tasks, weights, tier)
            else:
                results = list(await asyncio.gather(*tasks))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        results.sort(key=lambda r: r.agent_name)
        consensus = self._engine.evaluate(results, weights, config)
        duration_ms = (time.perf_counter() - started) * 1000

        log.info(
            "tier_evaluated",
            reached=consensus.reached,
            confidence=round(consensus.confidence, 4),
            votes=consensus.votes,
            failures=sum(1 for r in results if not r.succeeded),
            duration_ms=round(duration_ms, 1),
        )

        return TierExecution(
            tier=tier,
            results=results,
            consensus=consensus,
            duration_ms=duration_ms,
        )

    async def _join_first(
        self,
        tasks: dict[asyncio.Task, AgentAssignment],
        weights: Mapping[str, float],
        tier: int,
    ) -> list[AgentResult]:
        """Wait until one invocation succeeds, then cancel the rest."""
        results: list[AgentResult] = []
        pending = set(tasks)

        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            results.extend(task.result() for task in done)
            if any(r.succeeded for r in results):
                break

        for task in pending:
            task.cancel()
            task.add_done_callback(_discard_outcome)
            agent = tasks[task]
            now = utcnow()
            results.append(
                AgentResult(
                    agent_name=agent.name,
                    tier=tier,
                    weight=weights.get(agent.name, 1.0),
                    started_at=now,
                    completed_at=now,
                    error="cancelled after first successful result",
                    error_kind=AgentErrorKind.CANCELLED,
                )
            )

        if pending:
            logger.debug("tier_stragglers_cancelled", tier=tier, count=len(pending))

        return results

    async def _invoke(
        self,
        agent: AgentAssignment,
        context: ExecutionContext,
        config: ConsensusConfig,
        weights: Mapping[str, float],
        tier: int,
        semaphore: asyncio.Semaphore,
    ) -> AgentResult:
        """Invoke one agent, converting every failure into an AgentResult."""
        timeout = self.timeout_for(agent, config)
        weight = weights.get(agent.name, 1.0)

        async with semaphore:
            started_at = utcnow()
            started = time.perf_counter()

            def failed(kind: AgentErrorKind, message: str) -> AgentResult:
                logger.warning(
                    "agent_invocation_failed",
                    agent=agent.name,
                    tier=tier,
                    kind=kind.value,
                    error=message,
                )
                return AgentResult(
                    agent_name=agent.name,
                    tier=tier,
                    weight=weight,
                    latency_ms=(time.perf_counter() - started) * 1000,
                    started_at=started_at,
                    completed_at=utcnow(),
                    error=message,
                    error_kind=kind,
                )

            try:
                output = await asyncio.wait_for(
                    self._invoker.invoke(agent, context),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                return failed(AgentErrorKind.TIMEOUT, f"timed out after {timeout:g}s")
            except AgentInvocationError as e:
                try:
                    kind = AgentErrorKind(e.kind) if e.kind else AgentErrorKind.INVOCATION
                except ValueError:
                    kind = AgentErrorKind.INVOCATION
                return failed(kind, e.message)
            except Exception as e:
                return failed(AgentErrorKind.INVOCATION, f"{type(e).__name__}: {e}")

            if not is_well_formed(output):
                return failed(
                    AgentErrorKind.MALFORMED,
                    f"unusable output of type {type(output).__name__}",
                )

            return AgentResult(
                agent_name=agent.name,
                tier=tier,
                output=output,
                weight=weight,
                latency_ms=(time.perf_counter() - started) * 1000,
                started_at=started_at,
                completed_at=utcnow(),
            )
