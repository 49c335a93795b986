"""
Concord - Multi-Agent Fleet Coordination

Runs fleets of AI agents in ordered tiers and reconciles their answers
into a single, confidence-scored report.
"""

__version__ = "0.1.0"

from concord.core.enums import ConsensusAlgorithmType, FinalAggregation, TierStatus

__all__ = [
    "__version__",
    "ConsensusAlgorithmType",
    "FinalAggregation",
    "TierStatus",
]
