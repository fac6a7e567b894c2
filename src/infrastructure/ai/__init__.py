"""
AI Infrastructure Module

Exports:
    - OpenAICompatibleClient: Chat-completions LLM client (httpx)
"""

from .llm_client import OpenAICompatibleClient

__all__ = ["OpenAICompatibleClient"]
