"""LLM-based contextual enrichment of podcast episodes.

The LLM client is behind a thin interface (process/llm.py) so you can swap
providers by changing environment variables.  Supports OpenAI and Azure OpenAI.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

from exceptions import EnrichmentError
from process.llm import chat_completion_kwargs, get_client, get_model, is_reasoning_model
from storage.models import EnrichedMetadata

log = logging.getLogger(__name__)

# ── Prompt template ──────────────────────────────────────────────────
_PROMPT_PATH = Path(__file__).resolve().parent.parent / "prompts" / "enrich.txt"
_PROMPT_TEMPLATE: str | None = None

_SYSTEM_PROMPT = (
    "You are a precise contextual classifier for audio content. "
    "Always return valid JSON without markdown formatting."
)


def _load_prompt() -> str:
    global _PROMPT_TEMPLATE
    if _PROMPT_TEMPLATE is None:
        _PROMPT_TEMPLATE = _PROMPT_PATH.read_text(encoding="utf-8")
    return _PROMPT_TEMPLATE


def build_prompt(text: str, title: str | None = None) -> str:
    title_block = f"Episode Title: {title}\n\n" if title else ""
    return _load_prompt().format(title_block=title_block, text=text)


# ── JSON parsing with repair ────────────────────────────────────────
def _extract_json(text: str) -> dict:
    """Extract the first JSON object from *text*, tolerating markdown fences."""
    text = re.sub(r"```json\s*", "", text)
    text = re.sub(r"```\s*", "", text)
    text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1:
        raise ValueError(f"No JSON object found in LLM response: {text!r:.200}")
    return json.loads(text[start : end + 1])


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def validate_analysis(result: dict[str, Any]) -> EnrichedMetadata:
    """Normalise a raw LLM payload.  Raises EnrichmentError on a bad score."""
    score = result.get("brand_safety_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 10:
        raise EnrichmentError(f"Invalid brand_safety_score: {score!r}")

    return EnrichedMetadata(
        summary=result.get("summary") or "",
        topics=_str_list(result.get("topics")),
        entities=_str_list(result.get("entities")),
        tone=result.get("tone") or "neutral",
        sentiment=result.get("sentiment") or "neutral",
        brand_safety_score=float(score),
        iab_categories=_str_list(result.get("iab_categories")),
        contextual_segments=_str_list(result.get("contextual_segments")),
    )


# ── Enrichment ───────────────────────────────────────────────────────


def _max_attempts() -> int:
    try:
        return max(1, int(os.getenv("ENRICH_MAX_ATTEMPTS", "2")))
    except ValueError:
        return 2


def analyze_episode(text: str, title: str | None = None) -> EnrichedMetadata:
    """Enrich one episode's text.  Raises EnrichmentError on failure.

    Transport and JSON-parse failures are retried up to ENRICH_MAX_ATTEMPTS
    times; a payload that parses but fails validation is not.
    """
    prompt = build_prompt(text, title)
    client = get_client()
    model = get_model()
    attempts = _max_attempts()
    label = (title or text)[:60]

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            resp = client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "developer" if is_reasoning_model(model) else "system",
                        "content": _SYSTEM_PROMPT,
                    },
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                **chat_completion_kwargs(model=model, temperature=0.3, max_tokens=1200),
            )
            raw = resp.choices[0].message.content if resp.choices else None
            if not raw:
                raise ValueError("No response content from LLM")
            result = _extract_json(raw)
        except (json.JSONDecodeError, ValueError) as exc:
            log.warning("Enrichment parse error on attempt %d for %r: %s", attempt, label, exc)
            last_error = exc
            continue
        except Exception as exc:
            log.warning("Enrichment LLM call failed on attempt %d for %r: %s", attempt, label, exc)
            last_error = exc
            continue

        metadata = validate_analysis(result)
        log.info(
            "Enriched %r: sentiment=%s brand_safety=%.1f iab=%s",
            label,
            metadata.sentiment,
            metadata.brand_safety_score,
            ",".join(metadata.iab_categories) or "-",
        )
        return metadata

    raise EnrichmentError(
        f"Enrichment failed after {attempts} attempts: {last_error}"
    ) from last_error
