"""Provider registry for LLM adapters.

Routes model IDs to the correct adapter implementation based on the model
ID prefix. Only Ollama ("ollama/" prefix) is supported.
"""

import logging

from vidcast.config import ScriptConfig
from vidcast.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def _is_ollama_model(model_id: str) -> bool:
    """Return True if the model ID uses the ollama/ prefix."""
    return model_id.startswith("ollama/")


def get_adapter(config: ScriptConfig) -> LLMAdapter:
    """Return the LLM adapter for the configured script model.

    Args:
        config: Script settings (model ID, endpoint, optional API key).

    Raises:
        ValueError: If the model ID does not name a supported provider.
    """
    if _is_ollama_model(config.model):
        from vidcast.services.llm.ollama_adapter import OllamaAdapter

        logger.debug(
            "Routing %s to OllamaAdapter (base_url=%s, has_key=%s)",
            config.model,
            config.endpoint,
            bool(config.api_key),
        )
        return OllamaAdapter(
            model_id=config.model, base_url=config.endpoint, api_key=config.api_key
        )

    raise ValueError(
        f"Unsupported script model: {config.model}. Use an 'ollama/<model>' ID."
    )
