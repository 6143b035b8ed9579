"""
LLM Provider implementations.
"""

from .openai_provider import OpenAIProvider, Completion, ToolCall

__all__ = ["OpenAIProvider", "Completion", "ToolCall"]
