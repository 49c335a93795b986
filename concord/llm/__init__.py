"""LLM integration for Claude API."""

from concord.llm.client import ClaudeClient
from concord.llm.prompts import PromptBuilder

__all__ = ["ClaudeClient", "PromptBuilder"]
