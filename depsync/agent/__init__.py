"""LLM access shared by the engines."""

from depsync.agent.llm_client import LLMClient, LLMResponse

__all__ = ["LLMClient", "LLMResponse"]
