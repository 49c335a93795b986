"""Consensus engine: reduces a tier's agent outputs to a single verdict."""

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from concord.core.enums import ConsensusAlgorithmType, EscalationSeverity
from concord.core.fleet_models import ConsensusConfig
from concord.core.models import AgentResult, ConsensusResult, VoteTally


def canonical_key(value: Any) -> str:
    """Stable text key used to group equal outputs and break ties.

    Text and structured outputs carry different prefixes, so the string
    '{"cause": "db"}' never groups with the dict {"cause": "db"}.
    """
    if isinstance(value, str):
        return "s:" + value
    return "j:" + json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


@dataclass
class _Group:
    """Successful results sharing one output value."""

    key: str
    value: Any
    agents: list[str] = field(default_factory=list)
    score: float = 0.0

    @property
    def count(self) -> int:
        return len(self.agents)


class ConsensusEngine:
    """
    Deterministic voting over one tier's agent results.

    The engine:
    1. Drops failed results (errors never vote)
    2. Groups successful outputs by exact value
    3. Scores each group by count and summed agent weight
    4. Applies the configured algorithm to pick a winner and confidence

    Inputs are sorted internally, so the order results arrive in never
    changes the verdict, and weight sums are accumulated in a fixed order
    so repeated evaluations are bit-identical.
    """

    def evaluate(
        self,
        results: Iterable[AgentResult],
        weights: Mapping[str, float] | None = None,
        config: ConsensusConfig | None = None,
    ) -> ConsensusResult:
        """
        Evaluate consensus over a set of agent results.

        Args:
            results: Raw results for one tier, failures included
            weights: Per-agent weights; agents missing here use their result weight
            config: Algorithm and thresholds (defaults to majority)

        Returns:
            ConsensusResult; never raises for empty or all-failed input
        """
        config = config or ConsensusConfig()
        weights = weights or {}

        successful = sorted(
            (r for r in results if r.succeeded),
            key=lambda r: (r.agent_name, r.completed_at),
        )

        if not successful:
            return self._no_data(config)

        groups = self._group(successful, weights)
        algorithm = config.algorithm

        if algorithm is ConsensusAlgorithmType.MAJORITY:
            return self._majority(groups, len(successful), config)
        elif algorithm is ConsensusAlgorithmType.UNANIMOUS:
            return self._unanimous(groups, len(successful), config)
        elif algorithm is ConsensusAlgorithmType.WEIGHTED:
            return self._weighted(groups, len(successful), config)
        elif algorithm is ConsensusAlgorithmType.FIRST_WINS:
            return self._first_wins(groups, successful, config)
        elif algorithm is ConsensusAlgorithmType.HUMAN_REVIEW:
            return self._human_review(groups, len(successful), config, bool(weights))
        raise ValueError(f"Unsupported consensus algorithm: {algorithm}")

    def _group(
        self,
        successful: list[AgentResult],
        weights: Mapping[str, float],
    ) -> list[_Group]:
        """Group successful results by value, sorted by canonical key."""
        groups: dict[str, _Group] = {}
        for result in successful:
            key = canonical_key(result.output)
            group = groups.setdefault(key, _Group(key=key, value=result.output))
            group.agents.append(result.agent_name)
            group.score += weights.get(result.agent_name, result.weight)
        return [groups[k] for k in sorted(groups)]

    def _by_count(self, groups: list[_Group]) -> list[_Group]:
        # Largest group first; equal counts fall back to the smallest key.
        return sorted(groups, key=lambda g: (-g.count, g.key))

    def _by_score(self, groups: list[_Group]) -> list[_Group]:
        return sorted(groups, key=lambda g: (-g.score, g.key))

    def _tally(self, ranked: list[_Group]) -> list[VoteTally]:
        return [
            VoteTally(value=g.value, count=g.count, score=g.score, agents=list(g.agents))
            for g in ranked
        ]

    def _dissenters(self, groups: list[_Group], winner: _Group) -> list[str]:
        return sorted(a for g in groups if g.key != winner.key for a in g.agents)

    def _majority(
        self,
        groups: list[_Group],
        total: int,
        config: ConsensusConfig,
    ) -> ConsensusResult:
        ranked = self._by_count(groups)
        winner = ranked[0]
        reached = winner.count * 2 > total and total >= config.min_votes

        return self._build(
            config,
            winner=winner,
            confidence=winner.count / total,
            votes=total,
            reached=reached,
            ranked=ranked,
            groups=groups,
        )

    def _unanimous(
        self,
        groups: list[_Group],
        total: int,
        config: ConsensusConfig,
    ) -> ConsensusResult:
        ranked = self._by_count(groups)
        winner = ranked[0]
        reached = len(groups) == 1 and total >= config.min_votes

        return self._build(
            config,
            winner=winner,
            confidence=1.0 if reached else winner.count / total,
            votes=total,
            reached=reached,
            ranked=ranked,
            groups=groups,
        )

    def _weighted_confidence(self, groups: list[_Group], winner: _Group) -> float:
        # Summed in key order so the total never depends on arrival order.
        total_weight = 0.0
        for group in groups:
            total_weight += group.score
        if total_weight <= 0:
            return 0.0
        return min(1.0, winner.score / total_weight)

    def _weighted(
        self,
        groups: list[_Group],
        total: int,
        config: ConsensusConfig,
    ) -> ConsensusResult:
        ranked = self._by_score(groups)
        winner = ranked[0]
        confidence = self._weighted_confidence(groups, winner)
        reached = (
            confidence > 0
            and confidence >= config.min_confidence
            and total >= config.min_votes
        )

        return self._build(
            config,
            winner=winner,
            confidence=confidence,
            votes=total,
            reached=reached,
            ranked=ranked,
            groups=groups,
        )

    def _first_wins(
        self,
        groups: list[_Group],
        successful: list[AgentResult],
        config: ConsensusConfig,
    ) -> ConsensusResult:
        first = min(successful, key=lambda r: (r.completed_at, r.agent_name))
        first_key = canonical_key(first.output)
        winner = next(g for g in groups if g.key == first_key)
        ranked = [winner] + [g for g in self._by_count(groups) if g.key != first_key]

        return self._build(
            config,
            winner=winner,
            confidence=1.0,
            votes=len(successful),
            reached=True,
            ranked=ranked,
            groups=groups,
        )

    def _human_review(
        self,
        groups: list[_Group],
        total: int,
        config: ConsensusConfig,
        weighted: bool,
    ) -> ConsensusResult:
        if weighted:
            ranked = self._by_score(groups)
            confidence = self._weighted_confidence(groups, ranked[0])
        else:
            ranked = self._by_count(groups)
            confidence = ranked[0].count / total

        escalation = (
            EscalationSeverity.LOW
            if confidence >= config.min_confidence
            else EscalationSeverity.HIGH
        )

        return self._build(
            config,
            winner=ranked[0],
            confidence=confidence,
            votes=total,
            reached=False,
            ranked=ranked,
            groups=groups,
            escalation=escalation,
        )

    def _no_data(self, config: ConsensusConfig) -> ConsensusResult:
        escalation = (
            EscalationSeverity.CRITICAL
            if config.algorithm is ConsensusAlgorithmType.HUMAN_REVIEW
            else None
        )
        return ConsensusResult(
            result=None,
            confidence=0.0,
            votes=0,
            algorithm=config.algorithm,
            reached=False,
            min_votes=config.min_votes,
            min_confidence=config.min_confidence,
            escalation=escalation,
        )

    def _build(
        self,
        config: ConsensusConfig,
        winner: _Group,
        confidence: float,
        votes: int,
        reached: bool,
        ranked: list[_Group],
        groups: list[_Group],
        escalation: EscalationSeverity | None = None,
    ) -> ConsensusResult:
        return ConsensusResult(
            result=winner.value,
            confidence=max(0.0, min(1.0, confidence)),
            votes=votes,
            algorithm=config.algorithm,
            reached=reached,
            min_votes=config.min_votes,
            min_confidence=config.min_confidence,
            tally=self._tally(ranked),
            dissenters=self._dissenters(groups, winner),
            escalation=escalation,
        )


def evaluate(
    results: Iterable[AgentResult],
    weights: Mapping[str, float] | None = None,
    config: ConsensusConfig | None = None,
) -> ConsensusResult:
    """Evaluate consensus with a default engine."""
    return ConsensusEngine().evaluate(results, weights, config)
