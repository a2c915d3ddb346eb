"""Ollama adapter for the LLM abstraction layer.

Talks to a local or cloud Ollama server through ollama.AsyncClient. Output is
requested with format='json' and the target schema is described in the system
message, since cloud deployments do not reliably honour a schema passed via
the format parameter.
"""

import json
import logging
from typing import Optional, Type

from ollama import AsyncClient
from pydantic import BaseModel
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from vidcast.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def schema_instruction(schema: Type[BaseModel]) -> str:
    """Describe the expected JSON object for the system message."""
    return (
        "Respond with one JSON object only: no markdown, no commentary. "
        "It must validate against this JSON schema:\n"
        + json.dumps(schema.model_json_schema(), indent=2)
    )


def build_messages(prompt: str, schema: Type[BaseModel], system_prompt: Optional[str] = None) -> list[dict]:
    """Chat messages for one structured generation request."""
    system = schema_instruction(schema)
    if system_prompt:
        system = f"{system_prompt}\n\n{system}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence some models add around JSON."""
    stripped = raw.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped.strip("`")
        stripped = stripped[first_newline + 1:]
        if stripped.endswith("```"):
            stripped = stripped[:-3].rstrip()
    return stripped


class OllamaAdapter(LLMAdapter):
    """Structured text generation with an Ollama model.

    Args:
        model_id: Model ID, with or without the "ollama/" prefix.
        base_url: Ollama server URL.
        api_key: Bearer token for cloud deployments.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str = "http://localhost:11434",
        api_key: Optional[str] = None,
    ) -> None:
        self.model_id = model_id
        self.model_name = model_id.removeprefix("ollama/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = AsyncClient(host=base_url, headers=headers)

    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        """Generate and validate one schema instance.

        Any failure, including a reply that does not validate, is retried
        with exponential backoff; the last error is re-raised.
        """
        messages = build_messages(prompt, schema, system_prompt)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            before_sleep=lambda retry_state: logger.warning(
                f"Ollama retry {retry_state.attempt_number}/{max_retries} "
                f"({self.model_name}): {retry_state.outcome.exception()}"
            ),
            reraise=True,
        ):
            with attempt:
                response = await self._client.chat(
                    model=self.model_name,
                    messages=messages,
                    format="json",
                    options={"temperature": temperature},
                    stream=False,
                )
                return schema.model_validate_json(strip_code_fences(response.message.content))
