"""Abstract base class for LLM provider adapters.

Defines the consistent async interface that all adapters must implement
for structured text generation.
"""

from abc import ABC, abstractmethod
from typing import Optional, Type

from pydantic import BaseModel


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters.

    All adapters implement generate_text() with a consistent async
    signature, returning a validated Pydantic model instance of the
    caller-supplied schema class.
    """

    model_id: str = ""

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        """Generate structured text output from a prompt.

        Args:
            prompt: The user prompt to send to the model.
            schema: Pydantic model class defining the expected output structure.
            temperature: Sampling temperature (0.0-1.0). Lower = more deterministic.
            system_prompt: Optional system/instruction prompt.
            max_retries: Maximum number of retry attempts on failure.

        Returns:
            Validated instance of the supplied schema class.
        """
        ...
