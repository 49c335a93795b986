"""Agent invocation interface and its implementations."""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from concord.config import Settings, get_settings
from concord.core.enums import AgentErrorKind, OutputFormat
from concord.core.exceptions import AgentInvocationError, LLMError
from concord.core.fleet_models import AgentAssignment
from concord.core.models import AgentOutput, ExecutionContext
from concord.llm.client import ClaudeClient
from concord.llm.prompts import PromptBuilder


@runtime_checkable
class AgentInvoker(Protocol):
    """Runs one agent against the accumulated execution context.

    Implementations return the agent's output or raise; the tier executor
    turns any exception into a failed AgentResult. Retry policy, if any,
    belongs to the implementation.
    """

    async def invoke(
        self,
        agent: AgentAssignment,
        context: ExecutionContext,
    ) -> AgentOutput:
        """Invoke an agent and return its output."""
        ...


InvokeFn = Callable[[AgentAssignment, ExecutionContext], Awaitable[AgentOutput]]


class CallableInvoker:
    """Adapts a plain async function to the AgentInvoker protocol."""

    def __init__(self, func: InvokeFn) -> None:
        self._func = func

    async def invoke(
        self,
        agent: AgentAssignment,
        context: ExecutionContext,
    ) -> AgentOutput:
        return await self._func(agent, context)


class ClaudeAgentInvoker:
    """
    AgentInvoker backed by the Anthropic Claude API.

    The agent's instructions become the system prompt; the user prompt is
    rendered from the execution context. Agents declaring a JSON output
    format get their reply parsed into a structured value. A manager is
    asked to synthesize only when `manager_synthesizes` is set; otherwise
    it is prompted like any voting worker.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        llm_client: ClaudeClient | None = None,
        prompt_builder: PromptBuilder | None = None,
        manager_synthesizes: bool = True,
    ) -> None:
        self._settings = settings or get_settings()
        self._manager_synthesizes = manager_synthesizes
        self._llm_client = llm_client
        self._prompt_builder = prompt_builder or PromptBuilder()

    def _ensure_llm_client(self) -> ClaudeClient:
        """Ensure LLM client is available."""
        if self._llm_client is None:
            self._llm_client = ClaudeClient(self._settings)
        return self._llm_client

    async def invoke(
        self,
        agent: AgentAssignment,
        context: ExecutionContext,
    ) -> AgentOutput:
        client = self._ensure_llm_client()
        system_prompt = self._prompt_builder.build_system_prompt(agent, self._manager_synthesizes)
        user_prompt = self._prompt_builder.build_agent_prompt(
            agent, context, self._manager_synthesizes
        )

        try:
            if agent.output_format is OutputFormat.JSON:
                return await client.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    model=agent.model,
                    temperature=agent.temperature,
                )
            return await client.complete_text(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                model=agent.model,
                temperature=agent.temperature,
            )
        except LLMError as e:
            kind = (
                AgentErrorKind.MALFORMED
                if e.details.get("raw_response") is not None
                else AgentErrorKind.INVOCATION
            )
            raise AgentInvocationError(
                f"Agent {agent.name} failed: {e.message}",
                agent_name=agent.name,
                tier=agent.tier,
                kind=kind.value,
                details={"model": e.model, "status_code": e.status_code},
            ) from e
