"""LLM client for enrichment – OpenAI, any OpenAI-compatible API, or Azure OpenAI.

Azure is used when AZURE_OPENAI_ENDPOINT is set.  The model comes from
ENRICH_MODEL, then AZURE_OPENAI_DEPLOYMENT (Azure only), then LLM_MODEL.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from openai import AzureOpenAI, OpenAI

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"

# o1/o3/gpt-5 reject `temperature` and need headroom for hidden reasoning tokens.
_REASONING_PREFIXES = ("o1", "o3", "gpt-5")
_REASONING_TOKEN_FACTOR = 5

_client: OpenAI | AzureOpenAI | None = None


def _azure_endpoint() -> str | None:
    return os.getenv("AZURE_OPENAI_ENDPOINT") or None


def get_client() -> OpenAI | AzureOpenAI:
    """Lazily build the shared client from the environment."""
    global _client
    if _client is None:
        endpoint = _azure_endpoint()
        if endpoint:
            _client = AzureOpenAI(
                azure_endpoint=endpoint,
                api_key=os.environ["AZURE_OPENAI_API_KEY"],
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview"),
            )
        else:
            base_url = os.getenv("LLM_BASE_URL")
            _client = OpenAI(
                api_key=os.getenv("LLM_API_KEY") or os.environ["OPENAI_API_KEY"],
                base_url=base_url or None,
            )
            endpoint = base_url or "api.openai.com"
        log.info("Enrichment LLM endpoint: %s", endpoint)
    return _client


def get_model() -> str:
    model = os.getenv("ENRICH_MODEL")
    if not model and _azure_endpoint():
        model = os.getenv("AZURE_OPENAI_DEPLOYMENT")
    return model or os.getenv("LLM_MODEL", DEFAULT_MODEL)


def is_reasoning_model(model: str) -> bool:
    return model.lower().startswith(_REASONING_PREFIXES)


def chat_completion_kwargs(model: str, temperature: float, max_tokens: int) -> dict[str, Any]:
    """Sampling kwargs for chat.completions.create() that *model* accepts."""
    if is_reasoning_model(model):
        return {"max_completion_tokens": max_tokens * _REASONING_TOKEN_FACTOR}
    return {"temperature": temperature, "max_completion_tokens": max_tokens}
