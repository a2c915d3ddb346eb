"""LLM provider abstraction layer.

Provides a unified async interface for structured text generation.

Usage:
    from vidcast.services.llm import get_adapter, LLMAdapter

    adapter = get_adapter(settings.script)
    result = await adapter.generate_text(prompt, MySchema)
"""

from vidcast.services.llm.base import LLMAdapter
from vidcast.services.llm.registry import get_adapter

__all__ = ["LLMAdapter", "get_adapter"]
