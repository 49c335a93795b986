"""Tests for fleet orchestration across tiers."""

import asyncio

import pytest

from concord.analysis.orchestrator import FleetOrchestrator
from concord.core.enums import (
    AgentErrorKind,
    FleetEventType,
    FleetStatus,
    TierStatus,
)
from concord.core.fleet_models import FleetSpec
from concord.core.models import AgentResult, TierReport


def _two_tier_fleet(**coordination) -> FleetSpec:
    return FleetSpec.create(
        {
            "name": "two-tier",
            "agents": [
                {"name": "a", "tier": 1},
                {"name": "b", "tier": 1},
                {"name": "c", "tier": 2},
            ],
            "coordination": coordination,
        }
    )


class TestRootCauseScenario:
    """End-to-end run of the three-tier root-cause fleet."""

    @pytest.mark.asyncio
    async def test_manager_synthesizes_answer(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test the full pipeline from collectors to manager synthesis."""
        invoker = scripted_invoker(rca_script)
        orchestrator = FleetOrchestrator(rca_fleet, invoker, settings=settings)

        report = await asyncio.wait_for(orchestrator.run("Checkout latency doubled"), timeout=5)

        assert report.status is FleetStatus.DONE
        assert report.succeeded is True
        assert report.answer == rca_script["rca-coordinator"][1]
        assert report.synthesis_agent == "rca-coordinator"
        assert report.final_consensus is None
        assert [t.tier for t in report.tiers] == [1, 2]

    @pytest.mark.asyncio
    async def test_collector_tier_resolves_first(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test that the first collector's evidence is forwarded."""
        invoker = scripted_invoker(rca_script)
        orchestrator = FleetOrchestrator(rca_fleet, invoker, settings=settings)

        report = await asyncio.wait_for(orchestrator.run("incident"), timeout=5)
        tier1 = report.tier(1)

        assert tier1.status is TierStatus.COMPLETED
        assert tier1.consensus.result == "error rate spike in checkout-service"
        cancelled = sorted(r.agent_name for r in tier1.results if r.error_kind is AgentErrorKind.CANCELLED)
        assert cancelled == ["k8s-collector", "prometheus-collector"]

        reasoner_context = invoker.contexts_for("claude-analyzer")[0]
        assert reasoner_context.forwarded_payload() == [(1, "error rate spike in checkout-service")]

    @pytest.mark.asyncio
    async def test_reasoner_tier_weighted_verdict(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test that the reasoners reach weighted consensus at 2.5/3.5."""
        invoker = scripted_invoker(rca_script)
        orchestrator = FleetOrchestrator(rca_fleet, invoker, settings=settings)

        report = await asyncio.wait_for(orchestrator.run("incident"), timeout=5)
        tier2 = report.tier(2)

        assert tier2.status is TierStatus.COMPLETED
        assert tier2.consensus.result == "Database timeout"
        assert tier2.consensus.confidence == pytest.approx(0.714, abs=1e-3)
        assert tier2.consensus.reached is True
        assert tier2.consensus.dissenters == ["gpt-analyzer"]

    @pytest.mark.asyncio
    async def test_manager_sees_every_tier(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test that the manager is invoked once with the full context."""
        invoker = scripted_invoker(rca_script)
        orchestrator = FleetOrchestrator(rca_fleet, invoker, settings=settings)

        await asyncio.wait_for(orchestrator.run("incident"), timeout=5)

        contexts = invoker.contexts_for("rca-coordinator")
        assert len(contexts) == 1
        assert [e.tier for e in contexts[0].entries] == [1, 2]
        assert contexts[0].task == "incident"

    @pytest.mark.asyncio
    async def test_events_emitted_in_order(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test the lifecycle event sequence."""
        events = []
        orchestrator = FleetOrchestrator(
            rca_fleet,
            scripted_invoker(rca_script),
            settings=settings,
            event_callback=events.append,
        )

        report = await asyncio.wait_for(orchestrator.run("incident"), timeout=5)

        types = [e.type for e in events if e.type is not FleetEventType.AGENT_FAILED]
        assert types == [
            FleetEventType.FLEET_STARTED,
            FleetEventType.TIER_STARTED,
            FleetEventType.CONSENSUS_REACHED,
            FleetEventType.TIER_COMPLETED,
            FleetEventType.TIER_STARTED,
            FleetEventType.CONSENSUS_REACHED,
            FleetEventType.TIER_COMPLETED,
            FleetEventType.SYNTHESIS_STARTED,
            FleetEventType.FLEET_COMPLETED,
        ]
        failed = [e.agent_name for e in events if e.type is FleetEventType.AGENT_FAILED]
        assert sorted(failed) == ["k8s-collector", "prometheus-collector"]
        assert {e.run_id for e in events} == {report.run_id}

    @pytest.mark.asyncio
    async def test_progress_messages(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test that progress callbacks receive human-readable messages."""
        messages = []
        orchestrator = FleetOrchestrator(
            rca_fleet,
            scripted_invoker(rca_script),
            settings=settings,
            progress_callback=messages.append,
        )

        await asyncio.wait_for(orchestrator.run("incident"), timeout=5)

        assert messages[0] == "Starting fleet rca-team..."
        assert any("synthesizing" in m for m in messages)
        assert messages[-1] == "Fleet run complete"

    @pytest.mark.asyncio
    async def test_runs_are_isolated(self, settings, rca_fleet, rca_script, scripted_invoker):
        """Test that repeated runs share no state."""
        invoker = scripted_invoker(rca_script)
        orchestrator = FleetOrchestrator(rca_fleet, invoker, settings=settings)

        first = await asyncio.wait_for(orchestrator.run("first"), timeout=5)
        second = await asyncio.wait_for(orchestrator.run("second"), timeout=5)

        assert first.run_id != second.run_id
        contexts = invoker.contexts_for("rca-coordinator")
        assert [len(c.entries) for c in contexts] == [2, 2]
        assert contexts[1].task == "second"


class TestTierHandling:
    """Test tier outcomes other than clean consensus."""

    @pytest.mark.asyncio
    async def test_pass_all_results(self, settings, scripted_invoker):
        """Test that raw results are forwarded when configured."""
        fleet = _two_tier_fleet(pass_all_results=True)
        invoker = scripted_invoker({"a": (0.0, "x"), "b": (0.0, RuntimeError("down")), "c": (0.0, "done")})
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await orchestrator.run("t")

        tier, payload = invoker.contexts_for("c")[0].forwarded_payload()[0]
        assert tier == 1
        assert all(isinstance(r, AgentResult) for r in payload)
        assert [r.agent_name for r in payload] == ["a", "b"]
        assert payload[1].succeeded is False
        assert report.answer == "done"

    @pytest.mark.asyncio
    async def test_degraded_tier_continues(self, settings, scripted_invoker):
        """Test that a tier without consensus forwards its best value."""
        fleet = _two_tier_fleet()
        invoker = scripted_invoker({"a": (0.0, "x"), "b": (0.0, "y"), "c": (0.0, "done")})
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.DONE
        assert report.tier(1).status is TierStatus.DEGRADED
        assert report.degraded_tiers == [1]
        assert invoker.contexts_for("c")[0].forwarded_payload() == [(1, "x")]

    @pytest.mark.asyncio
    async def test_no_data_tier_continues(self, settings, scripted_invoker):
        """Test that an all-failed tier is flagged and the run carries on."""
        fleet = _two_tier_fleet()
        invoker = scripted_invoker(
            {
                "a": (0.0, RuntimeError("down")),
                "b": (0.0, RuntimeError("down")),
                "c": (0.0, "recovered"),
            }
        )
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.DONE
        assert report.failed_tiers == [1]
        assert report.tier(1).status is TierStatus.NO_DATA
        assert "failed" in report.tier(1).error
        assert invoker.contexts_for("c")[0].forwarded_payload() == [(1, None)]
        assert report.answer == "recovered"

    @pytest.mark.asyncio
    async def test_abort_on_tier_failure(self, settings, scripted_invoker):
        """Test that an exhausted tier stops the run when configured."""
        fleet = _two_tier_fleet(abort_on_tier_failure=True)
        invoker = scripted_invoker(
            {
                "a": (0.0, RuntimeError("down")),
                "b": (0.0, RuntimeError("down")),
                "c": (0.0, "unreachable"),
            }
        )
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.FAILED
        assert "tier 1" in report.error
        assert [t.tier for t in report.tiers] == [1]
        assert invoker.contexts_for("c") == []

    @pytest.mark.asyncio
    async def test_consensus_aggregation(self, settings, scripted_invoker):
        """Test that the default consensus reduces the last tier's outputs."""
        fleet = FleetSpec.create(
            {
                "name": "aggregate",
                "agents": [
                    {"name": "w", "tier": 1},
                    {"name": "x1", "tier": 2},
                    {"name": "x2", "tier": 2},
                    {"name": "x3", "tier": 2},
                ],
                "coordination": {"tier_consensus": {2: {"algorithm": "unanimous"}}},
            }
        )
        invoker = scripted_invoker(
            {
                "w": (0.0, "evidence"),
                "x1": (0.0, "db"),
                "x2": (0.0, "db"),
                "x3": (0.0, "network"),
            }
        )
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.tier(2).status is TierStatus.DEGRADED
        assert report.final_consensus.reached is True
        assert report.answer == "db"
        assert report.synthesis_agent is None


class TestHumanReview:
    """Test human-review tiers."""

    def _fleet(self) -> FleetSpec:
        return _two_tier_fleet(tier_consensus={1: {"algorithm": "human_review"}})

    def _script(self):
        return {"a": (0.0, "x"), "b": (0.0, "x"), "c": (0.0, "done")}

    @pytest.mark.asyncio
    async def test_awaits_review_without_callback(self, settings, scripted_invoker):
        """Test that the verdict is forwarded and flagged for review."""
        invoker = scripted_invoker(self._script())
        orchestrator = FleetOrchestrator(self._fleet(), invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.DONE
        assert report.tier(1).status is TierStatus.AWAITING_REVIEW
        assert report.tier(1).consensus.reached is False
        assert invoker.contexts_for("c")[0].forwarded_payload() == [(1, "x")]

    @pytest.mark.asyncio
    async def test_approved_review(self, settings, scripted_invoker):
        """Test that an approving reviewer completes the tier."""
        seen: list[TierReport] = []

        async def approve(tier: TierReport) -> bool:
            seen.append(tier)
            return True

        orchestrator = FleetOrchestrator(
            self._fleet(),
            scripted_invoker(self._script()),
            settings=settings,
            review_callback=approve,
        )

        report = await orchestrator.run("t")

        assert report.tier(1).status is TierStatus.COMPLETED
        assert seen[0].status is TierStatus.AWAITING_REVIEW
        assert seen[0].consensus.result == "x"

    @pytest.mark.asyncio
    async def test_rejected_review(self, settings, scripted_invoker):
        """Test that a rejecting reviewer fails the run."""

        async def reject(tier: TierReport) -> bool:
            return False

        invoker = scripted_invoker(self._script())
        orchestrator = FleetOrchestrator(
            self._fleet(),
            invoker,
            settings=settings,
            review_callback=reject,
        )

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.FAILED
        assert report.tier(1).status is TierStatus.FAILED
        assert "rejected" in report.error
        assert invoker.contexts_for("c") == []

    @pytest.mark.asyncio
    async def test_review_error_fails_run(self, settings, scripted_invoker):
        """Test that a reviewer raising is reported and keeps the tier."""

        async def review(tier: TierReport) -> bool:
            raise RuntimeError("review service down")

        invoker = scripted_invoker(self._script())
        orchestrator = FleetOrchestrator(
            self._fleet(),
            invoker,
            settings=settings,
            review_callback=review,
        )

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.FAILED
        assert [t.tier for t in report.tiers] == [1]
        assert report.tier(1).status is TierStatus.FAILED
        assert "review service down" in report.tier(1).error
        assert "review service down" in report.error
        assert invoker.contexts_for("c") == []


class TestObserverCallbacks:
    """Test that progress and event observers cannot break a run."""

    @pytest.mark.asyncio
    async def test_failing_observers_do_not_stop_run(self, settings, scripted_invoker):
        """Test that exceptions from observers are logged and the run completes."""

        def broken(_):
            raise RuntimeError("dashboard offline")

        orchestrator = FleetOrchestrator(
            _two_tier_fleet(),
            scripted_invoker({"a": (0.0, "x"), "b": (0.0, "x"), "c": (0.0, "done")}),
            settings=settings,
            progress_callback=broken,
            event_callback=broken,
        )

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.DONE
        assert report.answer == "done"
        assert [t.tier for t in report.tiers] == [1, 2]


class TestFatalErrors:
    """Test failures that stop a run."""

    def _fleet(self, **manager) -> FleetSpec:
        return FleetSpec.create(
            {
                "name": "synth",
                "agents": [
                    {"name": "w", "tier": 1},
                    {"name": "boss", "tier": 2, "role": "manager", **manager},
                ],
                "coordination": {"final_aggregation": "manager_synthesis"},
            }
        )

    @pytest.mark.asyncio
    async def test_manager_error(self, settings, scripted_invoker):
        """Test that a failing manager fails the run and keeps tier reports."""
        invoker = scripted_invoker({"w": (0.0, "x"), "boss": (0.0, RuntimeError("quota"))})
        orchestrator = FleetOrchestrator(self._fleet(), invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.FAILED
        assert "boss" in report.error
        assert report.answer is None
        assert [t.tier for t in report.tiers] == [1]

    @pytest.mark.asyncio
    async def test_manager_malformed_output(self, settings, scripted_invoker):
        """Test that a blank synthesis fails the run."""
        invoker = scripted_invoker({"w": (0.0, "x"), "boss": (0.0, "   ")})
        orchestrator = FleetOrchestrator(self._fleet(), invoker, settings=settings)

        report = await orchestrator.run("t")

        assert report.status is FleetStatus.FAILED
        assert "unusable" in report.error

    @pytest.mark.asyncio
    async def test_manager_timeout(self, settings, scripted_invoker):
        """Test that a slow manager fails the run."""
        invoker = scripted_invoker({"w": (0.0, "x"), "boss": (5.0, "late")})
        orchestrator = FleetOrchestrator(self._fleet(timeout_seconds=0.05), invoker, settings=settings)

        report = await asyncio.wait_for(orchestrator.run("t"), timeout=2)

        assert report.status is FleetStatus.FAILED
        assert "timed out" in report.error

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, settings, scripted_invoker):
        """Test that the deadline stops the run and keeps completed tiers."""
        fleet = _two_tier_fleet()
        invoker = scripted_invoker({"a": (0.0, "x"), "b": (0.0, "x"), "c": (1.0, "late")})
        events = []
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings, event_callback=events.append)

        report = await asyncio.wait_for(orchestrator.run("t", deadline_seconds=0.2), timeout=2)

        assert report.status is FleetStatus.FAILED
        assert "deadline" in report.error
        assert [t.tier for t in report.tiers] == [1]
        assert events[-1].type is FleetEventType.FLEET_FAILED

    @pytest.mark.asyncio
    async def test_deadline_from_settings(self, settings, scripted_invoker):
        """Test that the settings deadline applies when none is passed."""
        settings = settings.model_copy(update={"fleet_deadline_seconds": 0.1})
        fleet = _two_tier_fleet()
        invoker = scripted_invoker({"a": (1.0, "x"), "b": (1.0, "x"), "c": (0.0, "done")})
        orchestrator = FleetOrchestrator(fleet, invoker, settings=settings)

        report = await asyncio.wait_for(orchestrator.run("t"), timeout=2)

        assert report.status is FleetStatus.FAILED
        assert report.tiers == []
