"""Embedding generator — async LiteLLM embeddings with width validation.

One call per text. Calls are independent and safe to run concurrently; any
provider error (rate limit, network, bad response) or a vector of the wrong
width is raised as EmbeddingError for that text alone.
"""

from __future__ import annotations

import logging
import os

import litellm

from pagereader.config import EmbeddingCfg
from pagereader.errors import EmbeddingError

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


def validate_api_key(model: str) -> None:
    """Check that the API key env var for *model*'s provider is set.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EmbeddingError: If the required key is missing from the environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EmbeddingError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class Embedder:
    """Turn text into fixed-width vectors through LiteLLM."""

    def __init__(self, cfg: EmbeddingCfg | None = None) -> None:
        self.cfg = cfg or EmbeddingCfg()

    @property
    def dimensions(self) -> int:
        return self.cfg.dimensions

    def validate(self) -> None:
        """Fail fast when the provider key is missing."""
        validate_api_key(self.cfg.model)

    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            EmbeddingError: On provider failure or a vector of unexpected width.
        """
        try:
            response = await litellm.aembedding(
                model=self.cfg.model,
                input=[text],
                num_retries=self.cfg.num_retries,
            )
            vector = list(response.data[0]["embedding"])
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding with '{self.cfg.model}' failed: {exc}"
            ) from exc

        if len(vector) != self.cfg.dimensions:
            raise EmbeddingError(
                f"Model '{self.cfg.model}' returned {len(vector)} dimensions; "
                f"expected {self.cfg.dimensions}."
            )
        return vector
