"""LLM package for Pookal."""

from pookal.llm.client import LLMClient, resolve_llm_client

__all__ = ["LLMClient", "resolve_llm_client"]
