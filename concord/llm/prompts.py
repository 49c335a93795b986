"""Prompt templates that render an execution context for an agent."""

import json
from typing import Any

from jinja2 import BaseLoader, Environment

from concord.core.fleet_models import AgentAssignment
from concord.core.models import AgentResult, ExecutionContext

DEFAULT_WORKER_INSTRUCTIONS = (
    "You are one of several independent investigators working on the same problem. "
    "Answer from the evidence you are given. Be concise and state your conclusion "
    "in the first line so it can be compared with other investigators."
)

DEFAULT_MANAGER_INSTRUCTIONS = (
    "You coordinate a fleet of investigators. Read every tier's findings, including "
    "disagreements and failed agents, and write a single synthesized answer. Call out "
    "low-confidence or degraded tiers explicitly instead of hiding them."
)

WORKER_TEMPLATE = """## Task
{{ task | render_output }}
{% if prior %}

## Findings From Earlier Tiers
{% for tier, payload in prior %}
### Tier {{ tier }}
{% if payload is agent_results %}
{% for result in payload %}
- {{ result.agent_name }}: {% if result.succeeded %}{{ result.output | render_output }}{% else %}(failed: {{ result.error }}){% endif %}

{% endfor %}
{% elif payload is none %}
(no agent in this tier produced a result)
{% else %}
{{ payload | render_output }}
{% endif %}
{% endfor %}
{% endif %}

Respond with your own assessment of the task."""

MANAGER_TEMPLATE = """## Task
{{ task | render_output }}

## Tier Findings
{% for entry in entries %}
### Tier {{ entry.tier }} ({{ entry.consensus.algorithm.value }})
Verdict: {% if entry.consensus.no_data %}no data{% else %}{{ entry.consensus.result | render_output }}{% endif %}

Confidence: {{ "%.2f" | format(entry.consensus.confidence) }} | Reached: {{ "yes" if entry.consensus.reached else "no" }} | Votes: {{ entry.consensus.votes }}
{% if entry.consensus.dissenters %}Dissenters: {{ entry.consensus.dissenters | join(", ") }}
{% endif %}

Raw results:
{% for result in entry.results %}
- {{ result.agent_name }} (weight {{ result.weight }}): {% if result.succeeded %}{{ result.output | render_output }}{% else %}FAILED [{{ result.error_kind.value if result.error_kind else "error" }}] {{ result.error }}{% endif %}

{% endfor %}
{% endfor %}

Synthesize the findings above into one final answer for the task."""


def render_output(value: Any) -> str:
    """Render an agent output or task value as prompt text."""
    if value is None:
        return "(none)"
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False, default=str)


def _is_agent_results(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, AgentResult) for v in value) and bool(value)


class PromptBuilder:
    """Builder for constructing agent prompts from templates."""

    def __init__(self) -> None:
        self._jinja = Environment(loader=BaseLoader(), trim_blocks=True, lstrip_blocks=True)
        self._jinja.filters["render_output"] = render_output
        self._jinja.tests["agent_results"] = _is_agent_results
        self._worker_template = self._jinja.from_string(WORKER_TEMPLATE)
        self._manager_template = self._jinja.from_string(MANAGER_TEMPLATE)

    def build_system_prompt(self, agent: AgentAssignment, synthesize: bool = True) -> str:
        """Build the system prompt for an agent.

        Managers get the synthesis instructions only when the fleet ends in
        manager synthesis; otherwise they vote like any worker.
        """
        if agent.instructions:
            return agent.instructions
        if agent.is_manager and synthesize:
            return DEFAULT_MANAGER_INSTRUCTIONS
        return DEFAULT_WORKER_INSTRUCTIONS

    def build_agent_prompt(
        self,
        agent: AgentAssignment,
        context: ExecutionContext,
        synthesize: bool = True,
    ) -> str:
        """Build the user prompt for an agent from the context it can see."""
        if agent.is_manager and synthesize:
            return self.build_synthesis_prompt(context)
        return self._worker_template.render(
            task=context.task,
            prior=context.forwarded_payload(),
        ).strip()

    def build_synthesis_prompt(self, context: ExecutionContext) -> str:
        """Build the manager prompt covering every tier's verdict and raw results."""
        return self._manager_template.render(
            task=context.task,
            entries=context.entries,
        ).strip()
