"""Agent invocation and fleet loading."""

from concord.agents.base import AgentInvoker, CallableInvoker, ClaudeAgentInvoker
from concord.agents.loader import FleetLoader

__all__ = ["AgentInvoker", "CallableInvoker", "ClaudeAgentInvoker", "FleetLoader"]
