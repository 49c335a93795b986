"""Fleet orchestrator: sequences tiers and produces the final report."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

import structlog

from concord.agents.base import AgentInvoker
from concord.analysis.consensus import ConsensusEngine
from concord.analysis.tier_executor import TierExecution, TierExecutor, is_well_formed
from concord.config import Settings, get_settings
from concord.core.enums import (
    FleetEventType,
    FleetStatus,
    TierStatus,
)
from concord.core.exceptions import (
    ConcordError,
    FleetDeadlineExceeded,
    HumanReviewRejected,
    SynthesisFailure,
    TierExhaustedError,
)
from concord.core.fleet_models import ConsensusConfig, FleetSpec
from concord.core.models import (
    ConsensusResult,
    ContextEntry,
    ExecutionContext,
    FleetEvent,
    FleetExecutionReport,
    TierReport,
    utcnow,
)

logger = structlog.get_logger(__name__)

ReviewCallback = Callable[[TierReport], Awaitable[bool]]


class _FleetRun:
    """Mutable bookkeeping for a single run; never shared between runs."""

    def __init__(self, task: Any) -> None:
        self.run_id = str(uuid4())
        self.started_at: datetime = utcnow()
        self.status = FleetStatus.PENDING
        self.context = ExecutionContext(task=task)
        self.tiers: list[TierReport] = []
        self.final_consensus: ConsensusResult | None = None
        self.answer: Any = None
        self.synthesis_agent: str | None = None
        self.error: str | None = None


class FleetOrchestrator:
    """
    Runs a fleet tier by tier and reconciles the outcome.

    Lifecycle:
    1. pending
    2. running: each voting tier in ascending order, one at a time
    3. synthesizing: global consensus or manager synthesis
    4. done, or failed on a fatal error or an expired deadline

    Tiers that fail to reach consensus, or that have no successful agent
    at all, are flagged in the report and the run carries on with the best
    value available. Only a failing manager synthesis, a rejected human
    review, an expired deadline or (when configured) an exhausted tier
    stops the run.
    """

    def __init__(
        self,
        spec: FleetSpec,
        invoker: AgentInvoker,
        settings: Settings | None = None,
        engine: ConsensusEngine | None = None,
        executor: TierExecutor | None = None,
        progress_callback: Callable[[str], None] | None = None,
        event_callback: Callable[[FleetEvent], None] | None = None,
        review_callback: ReviewCallback | None = None,
    ) -> None:
        self._spec = spec
        self._settings = settings or get_settings()
        self._invoker = invoker
        self._engine = engine or ConsensusEngine()
        self._executor = executor or TierExecutor(
            invoker, engine=self._engine, settings=self._settings
        )
        self._progress_callback = progress_callback
        self._event_callback = event_callback
        self._review_callback = review_callback

    @property
    def spec(self) -> FleetSpec:
        """Fleet being orchestrated."""
        return self._spec

    def _report_progress(self, message: str) -> None:
        """Report progress if callback is configured."""
        if self._progress_callback:
            try:
                self._progress_callback(message)
            except Exception as e:
                logger.warning("progress_callback_failed", fleet=self._spec.name, error=str(e))

    def _emit(
        self,
        run: _FleetRun,
        event_type: FleetEventType,
        message: str = "",
        tier: int | None = None,
        agent_name: str | None = None,
        **data: Any,
    ) -> None:
        if message:
            self._report_progress(message)
        if not self._event_callback:
            return
        event = FleetEvent(
            type=event_type,
            fleet_name=self._spec.name,
            run_id=run.run_id,
            tier=tier,
            agent_name=agent_name,
            message=message,
            data=data,
        )
        try:
            self._event_callback(event)
        except Exception as e:
            # Observers never change the outcome of a run
            logger.warning(
                "event_callback_failed",
                fleet=self._spec.name,
                run_id=run.run_id,
                event_type=event_type.value,
                error=str(e),
            )

    async def run(
        self,
        task: Any,
        deadline_seconds: float | None = None,
    ) -> FleetExecutionReport:
        """
        Execute the fleet against a task.

        Args:
            task: Task input handed to the first tier
            deadline_seconds: Overall deadline (defaults to settings)

        Returns:
            FleetExecutionReport; failures are reported, not raised
        """
        run = _FleetRun(task)
        deadline = (
            deadline_seconds
            if deadline_seconds is not None
            else self._settings.fleet_deadline_seconds
        )
        log = logger.bind(fleet=self._spec.name, run_id=run.run_id)

        log.info("fleet_started", tiers=self._spec.tiers(), deadline=deadline)
        self._emit(
            run,
            FleetEventType.FLEET_STARTED,
            f"Starting fleet {self._spec.name}...",
            agent_count=len(self._spec.agents),
        )

        try:
            if deadline:
                await asyncio.wait_for(self._execute(run), timeout=deadline)
            else:
                await self._execute(run)
        except asyncio.TimeoutError:
            error = FleetDeadlineExceeded(
                f"Fleet run exceeded its deadline of {deadline:g}s",
                deadline_seconds=deadline,
            )
            self._fail(run, error)
        except (SynthesisFailure, HumanReviewRejected, TierExhaustedError) as e:
            self._fail(run, e)
        else:
            run.status = FleetStatus.DONE
            log.info(
                "fleet_completed",
                degraded=[t.tier for t in run.tiers if t.status.is_degraded],
            )
            self._emit(run, FleetEventType.FLEET_COMPLETED, "Fleet run complete")

        return FleetExecutionReport(
            run_id=run.run_id,
            fleet_name=self._spec.name,
            status=run.status,
            task=task,
            tiers=list(run.tiers),
            final_consensus=run.final_consensus,
            answer=run.answer,
            synthesis_agent=run.synthesis_agent,
            error=run.error,
            started_at=run.started_at,
            completed_at=utcnow(),
        )

    def _fail(self, run: _FleetRun, error: ConcordError) -> None:
        run.status = FleetStatus.FAILED
        run.error = error.message
        logger.error(
            "fleet_failed",
            fleet=self._spec.name,
            run_id=run.run_id,
            error=error.message,
            error_type=type(error).__name__,
            completed_tiers=[t.tier for t in run.tiers],
        )
        self._emit(
            run,
            FleetEventType.FLEET_FAILED,
            f"Fleet run failed: {error.message}",
            error_type=type(error).__name__,
        )

    async def _execute(self, run: _FleetRun) -> None:
        run.status = FleetStatus.RUNNING

        for tier in self._spec.voting_tiers():
            await self._run_tier(run, tier)

        run.status = FleetStatus.SYNTHESIZING
        if self._spec.synthesizes:
            await self._synthesize(run)
        else:
            self._aggregate(run)

    async def _run_tier(self, run: _FleetRun, tier: int) -> None:
        coordination = self._spec.coordination
        agents = self._spec.voting_agents(tier)
        config = coordination.consensus_for(tier)

        self._emit(
            run,
            FleetEventType.TIER_STARTED,
            f"Running tier {tier} ({len(agents)} agents, {config.algorithm.value})...",
            tier=tier,
            agents=[a.name for a in agents],
        )

        execution = await self._executor.run_tier(
            agents,
            run.context,
            config,
            weights=self._spec.weights_for(tier),
            tier=tier,
        )

        for result in execution.results:
            if not result.succeeded:
                self._emit(
                    run,
                    FleetEventType.AGENT_FAILED,
                    tier=tier,
                    agent_name=result.agent_name,
                    error=result.error,
                    kind=result.error_kind.value if result.error_kind else None,
                )

        status = self._classify(execution.consensus)
        error: str | None = None
        exhausted: TierExhaustedError | None = None

        if status is TierStatus.NO_DATA:
            exhausted = TierExhaustedError(
                f"All {len(agents)} agents in tier {tier} failed",
                tier=tier,
                agent_count=len(agents),
            )
            error = exhausted.message
            logger.warning("tier_exhausted", tier=tier, agents=len(agents))

        rejected = False
        if status is TierStatus.AWAITING_REVIEW and self._review_callback:
            pending = self._build_report(execution, config, status, error)
            try:
                approved = await self._review_callback(pending)
            except Exception as e:
                approved = False
                error = f"Review of tier {tier} failed: {type(e).__name__}: {e}"
                logger.error("tier_review_failed", tier=tier, error=str(e))
            if approved:
                status = TierStatus.COMPLETED
            else:
                status = TierStatus.FAILED
                error = error or f"Reviewer rejected tier {tier} verdict"
                rejected = True

        run.tiers.append(self._build_report(execution, config, status, error))
        run.context = run.context.append(
            ContextEntry(
                tier=tier,
                consensus=execution.consensus,
                results=execution.results,
                pass_all_results=coordination.pass_all_results,
            )
        )

        if execution.consensus.reached:
            self._emit(
                run,
                FleetEventType.CONSENSUS_REACHED,
                tier=tier,
                votes=execution.consensus.votes,
                confidence=execution.consensus.confidence,
            )
        self._emit(
            run,
            FleetEventType.TIER_COMPLETED,
            f"Tier {tier} {status.value} "
            f"(confidence {execution.consensus.confidence:.2f})",
            tier=tier,
            status=status.value,
        )

        if rejected:
            raise HumanReviewRejected(error, tier=tier)
        if exhausted is not None and coordination.abort_on_tier_failure:
            raise exhausted

    def _classify(self, consensus: ConsensusResult) -> TierStatus:
        if consensus.no_data:
            return TierStatus.NO_DATA
        if not consensus.algorithm.auto_advances:
            return TierStatus.AWAITING_REVIEW
        if consensus.reached:
            return TierStatus.COMPLETED
        return TierStatus.DEGRADED

    def _build_report(
        self,
        execution: TierExecution,
        config: ConsensusConfig,
        status: TierStatus,
        error: str | None,
    ) -> TierReport:
        return TierReport(
            tier=execution.tier,
            status=status,
            consensus=execution.consensus,
            results=execution.results,
            config=config,
            duration_ms=execution.duration_ms,
            error=error,
        )

    def _aggregate(self, run: _FleetRun) -> None:
        """Apply the fleet default consensus to the last tier's raw outputs."""
        last = run.context.latest()
        if last is None:
            return

        final = self._engine.evaluate(
            last.results,
            self._spec.weights_for(last.tier),
            self._spec.coordination.default_consensus,
        )
        run.final_consensus = final
        run.answer = final.result
        logger.info(
            "final_consensus",
            fleet=self._spec.name,
            tier=last.tier,
            reached=final.reached,
            confidence=round(final.confidence, 4),
        )

    async def _synthesize(self, run: _FleetRun) -> None:
        """Ask the manager to summarize every tier; its output is the answer."""
        manager = self._spec.manager()
        if manager is None:
            raise SynthesisFailure("No manager agent available for synthesis")

        config = self._spec.coordination.consensus_for(manager.tier)
        timeout = self._executor.timeout_for(manager, config)

        self._emit(
            run,
            FleetEventType.SYNTHESIS_STARTED,
            f"Manager {manager.name} synthesizing findings...",
            agent_name=manager.name,
        )

        try:
            output = await asyncio.wait_for(
                self._invoker.invoke(manager, run.context),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise SynthesisFailure(
                f"Manager {manager.name} timed out after {timeout:g}s",
                agent_name=manager.name,
            ) from e
        except Exception as e:
            raise SynthesisFailure(
                f"Manager {manager.name} failed: {e}",
                agent_name=manager.name,
            ) from e

        if not is_well_formed(output):
            raise SynthesisFailure(
                f"Manager {manager.name} returned unusable output",
                agent_name=manager.name,
            )

        run.answer = output
        run.synthesis_agent = manager.name
        logger.info("synthesis_completed", fleet=self._spec.name, manager=manager.name)
