"""Fleet orchestration and consensus algorithms."""

from concord.analysis.consensus import ConsensusEngine
from concord.analysis.orchestrator import FleetOrchestrator
from concord.analysis.tier_executor import TierExecutor

__all__ = ["ConsensusEngine", "FleetOrchestrator", "TierExecutor"]
